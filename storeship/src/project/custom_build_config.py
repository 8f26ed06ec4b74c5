from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from storeship.src.project.build_config import (
    BuildConfigError,
    BuildConfigYAMLError,
    read_and_validate_build_config,
)
from storeship.src.project.build_profile import BuildProfile

CUSTOM_BUILD_CONFIG_DIR = Path(".eas") / "build"


class CustomBuildConfigError(Exception):
    """A custom build config that cannot be used.

    ``kind`` is "missing", "yaml" or "config".
    """

    def __init__(self, message: str, kind: str, config_path: Path):
        super().__init__(message)
        self.kind = kind
        self.config_path = config_path


@dataclass
class CustomBuildConfigMetadata:
    workflow_name: Optional[str] = None


def get_custom_build_config_path(config_filename: str) -> Path:
    return CUSTOM_BUILD_CONFIG_DIR / config_filename


def validate_custom_build_config(
    project_dir: Path, profile: BuildProfile
) -> Optional[CustomBuildConfigMetadata]:
    if not profile.config:
        return None

    relative_config_path = get_custom_build_config_path(profile.config)
    config_path = Path(project_dir) / relative_config_path
    if not config_path.exists():
        raise CustomBuildConfigError(
            f"Custom build configuration file {relative_config_path} does not exist.",
            kind="missing",
            config_path=relative_config_path,
        )

    try:
        config = read_and_validate_build_config(
            config_path, skip_namespaced_functions_check=True
        )
    except BuildConfigYAMLError as e:
        raise CustomBuildConfigError(
            f"Custom build configuration file {relative_config_path} contains invalid YAML.\n\n{e}",
            kind="yaml",
            config_path=relative_config_path,
        ) from e
    except BuildConfigError as e:
        raise CustomBuildConfigError(
            f"Custom build configuration file {relative_config_path} contains invalid configuration. Please check the docs!\n{e}",
            kind="config",
            config_path=relative_config_path,
        ) from e

    return CustomBuildConfigMetadata(workflow_name=config["build"].get("name"))
