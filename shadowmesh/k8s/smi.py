"""Checks that the installed SMI resource groups have supported versions."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class GroupVersion:
    group: str
    version: str


@dataclass(frozen=True)
class ServerGroup:
    """An API group served by the cluster with its preferred version."""

    name: str
    preferred_version: str


SPLIT_GROUP_VERSION = GroupVersion("split.smi-spec.io", "v1alpha3")
SPECS_GROUP_VERSION = GroupVersion("specs.smi-spec.io", "v1alpha3")
ACCESS_GROUP_VERSION = GroupVersion("access.smi-spec.io", "v1alpha2")


class SMIVersionError(Exception):
    """Raised when required SMI groups are missing or have the wrong version."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


def check_smi_version(server_groups: Iterable[ServerGroup], acl_enabled: bool) -> None:
    """Raise SMIVersionError unless every required SMI group is served at its version."""
    groups = list(server_groups)
    required = [SPLIT_GROUP_VERSION, SPECS_GROUP_VERSION]
    if acl_enabled:
        required.append(ACCESS_GROUP_VERSION)

    problems = []
    for gv in required:
        version = next(
            (g.preferred_version for g in groups if g.name == gv.group), ""
        )
        if not version:
            problems.append(
                f'unable to find group "{gv.group}" version "{gv.version}"'
            )
        elif version != gv.version:
            problems.append(
                f'unable to find group "{gv.group}" version "{gv.version}", got "{version}"'
            )

    if problems:
        raise SMIVersionError(problems)