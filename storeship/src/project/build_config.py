"""Reader for custom build workflow files (``.eas/build/*.yml``).

A workflow file looks like::

    build:
      name: Build and test
      steps:
        - eas/checkout
        - run: npm ci
        - run:
            name: Test
            command: npm test
        - notify
    functions:
      notify:
        path: ./notify
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml

NAMESPACE_SEPARATOR = "/"


class BuildConfigError(Exception):
    """The file is valid YAML but not a valid build configuration."""


class BuildConfigYAMLError(BuildConfigError):
    """The file is not valid YAML."""


def _check_run_step(index: int, value: Any) -> None:
    if isinstance(value, str) and value.strip():
        return
    if isinstance(value, dict):
        command = value.get("command")
        if not isinstance(command, str) or not command.strip():
            raise BuildConfigError(f'"build.steps[{index}].run.command" must be a non-empty string')
        if "name" in value and not isinstance(value["name"], str):
            raise BuildConfigError(f'"build.steps[{index}].run.name" must be a string')
        return
    raise BuildConfigError(
        f'"build.steps[{index}].run" must be a command string or a mapping with a "command"'
    )


def _step_function_name(index: int, step: Any) -> Union[str, None]:
    """Validate a step and return the function it calls, if any."""
    if isinstance(step, str):
        if not step.strip():
            raise BuildConfigError(f'"build.steps[{index}]" must not be empty')
        return step

    if not isinstance(step, dict) or len(step) != 1:
        raise BuildConfigError(
            f'"build.steps[{index}]" must be a function name or a mapping with exactly one key'
        )

    name, value = next(iter(step.items()))
    if not isinstance(name, str):
        raise BuildConfigError(f'"build.steps[{index}]" key must be a string, got {name!r}')
    if name == "run":
        _check_run_step(index, value)
        return None
    if value is not None and not isinstance(value, dict):
        raise BuildConfigError(f'"build.steps[{index}].{name}" must be a mapping')
    return name


def validate_build_config(
    config: Any, skip_namespaced_functions_check: bool = False
) -> Dict[str, Any]:
    if not isinstance(config, dict):
        raise BuildConfigError("Build configuration must be a mapping")

    build = config.get("build")
    if not isinstance(build, dict):
        raise BuildConfigError('"build" is required and must be a mapping')

    if "name" in build and not isinstance(build["name"], str):
        raise BuildConfigError('"build.name" must be a string')

    steps = build.get("steps")
    if not isinstance(steps, list) or not steps:
        raise BuildConfigError('"build.steps" is required and must be a non-empty list')

    functions = config.get("functions") or {}
    if not isinstance(functions, dict):
        raise BuildConfigError('"functions" must be a mapping')
    for name, function in functions.items():
        if not isinstance(name, str):
            raise BuildConfigError(f"Function name {name!r} must be a string")
        if NAMESPACE_SEPARATOR in name:
            raise BuildConfigError(f'Function name "{name}" must not contain "/"')
        if not isinstance(function, dict) or not isinstance(function.get("path"), str):
            raise BuildConfigError(f'"functions.{name}.path" is required')

    for index, step in enumerate(steps):
        function_name = _step_function_name(index, step)
        if function_name is None or function_name in functions:
            continue
        if NAMESPACE_SEPARATOR in function_name and skip_namespaced_functions_check:
            continue
        raise BuildConfigError(
            f'Calling non-existent function "{function_name}" in "build.steps[{index}]"'
        )

    return config


def read_and_validate_build_config(
    config_path: Union[str, Path], skip_namespaced_functions_check: bool = False
) -> Dict[str, Any]:
    try:
        # Raw bytes, so undecodable input surfaces as a yaml.YAMLError
        config = yaml.safe_load(Path(config_path).read_bytes())
    except yaml.YAMLError as e:
        raise BuildConfigYAMLError(str(e)) from e
    return validate_build_config(config, skip_namespaced_functions_check)
