"""Finding and deleting auto scaling launch configurations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


def get_all_launch_configurations(client: Any, exclude_after: datetime) -> list[str]:
    """Return the names of launch configurations created before ``exclude_after``."""
    result = client.describe_launch_configurations()
    return [
        config["LaunchConfigurationName"]
        for config in result.get("LaunchConfigurations", [])
        if exclude_after > config["CreatedTime"]
    ]


def nuke_all_launch_configurations(client: Any, region: str, config_names: list[str]) -> list[str]:
    """Delete every given launch configuration; failures are logged. Returns those deleted."""
    if not config_names:
        logger.info("No Launch Configurations to nuke in region %s", region)
        return []

    logger.info("Deleting all Launch Configurations in region %s", region)
    deleted: list[str] = []
    for name in config_names:
        try:
            client.delete_launch_configuration(LaunchConfigurationName=name)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] %s", exc)
        else:
            deleted.append(name)
            logger.info("Deleted Launch configuration: %s", name)

    logger.info("[OK] %d Launch Configuration(s) deleted in %s", len(deleted), region)
    return deleted


@dataclass
class LaunchConfigs:
    """All launch configurations found in a region."""

    launch_configuration_names: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "lc"
    max_batch_size: ClassVar[int] = 200

    @property
    def resource_identifiers(self) -> list[str]:
        """The names of the launch configurations."""
        return self.launch_configuration_names

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given launch configurations using a client from the session."""
        return nuke_all_launch_configurations(
            session.client("autoscaling"), session.region_name, list(identifiers)
        )