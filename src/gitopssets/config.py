from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Literal

from loguru import logger

from gitopssets.tools.duration import parse_duration
from gitopssets.tools.fs import find_config_file


@dataclass
class ControllerConfig:
    """
    Settings of the GitOpsSet controller that are stored in a `gitopssets.yaml` file.
    """

    fetch_retries: int = 9
    """ How often a failed archive download is retried before the reconciliation fails. """

    http_timeout: float = 30
    """ Timeout in seconds for a single HTTP request or Kubernetes API call. """

    reconcile_timeout: float = 300
    """ Deadline in seconds for a complete reconciliation of one GitOpsSet. """

    field_manager: str = "gitopssets-controller"
    """ The field manager used for server-side apply. """

    empty_generators: Literal["none", "single"] = "none"
    """
    What a GitOpsSet without any generators produces: `none` renders nothing, `single` renders every template once
    with an empty element.
    """

    max_archive_size: int | None = None
    """ Maximum size of a repository archive and of its extracted contents in bytes. Unlimited if not set. """

    resync_interval: str = "10m"
    """ How often every GitOpsSet is reconciled when running continuously, even if no generator asks for it. """

    scratch_dir: Path | None = None
    """ Directory to create temporary directories in. Defaults to the system's temporary directory. """

    @property
    def resync(self) -> timedelta:
        return parse_duration(self.resync_interval)


@dataclass
class ConfigFile:
    """
    Wrapper for the controller configuration file.
    """

    FILENAME = "gitopssets.yaml"

    file: Path | None
    config: ControllerConfig

    @staticmethod
    def load(file: Path | None = None, /) -> "ConfigFile":
        """
        Load the controller configuration from the given or the default configuration file. If the configuration file
        does not exist, the default configuration is returned.
        """

        from databind.json import load as deser
        from yaml import safe_load

        if file is None:
            file = find_config_file(ConfigFile.FILENAME, required=False)
        if file is None:
            return ConfigFile(None, ControllerConfig())

        logger.debug("Loading controller configuration from '{}'", file)
        config = deser(safe_load(file.read_text()) or {}, ControllerConfig, filename=str(file))

        if config.scratch_dir is not None and not config.scratch_dir.is_absolute():
            config.scratch_dir = file.parent / config.scratch_dir
        if config.empty_generators not in ("none", "single"):
            raise ValueError(f"empty_generators must be 'none' or 'single', got {config.empty_generators!r}")
        parse_duration(config.resync_interval)

        return ConfigFile(file, config)
