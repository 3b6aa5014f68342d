# sentinelhub/scanner/adapters/container_adapter.py
"""
Container configuration auditor.

Reads docker-compose files (PyYAML) and Dockerfiles and reports:

    privileged-container   services with `privileged: true`
    docker-socket-mount    /var/run/docker.sock bind-mounted into a service
    host-network           `network_mode: host`
    root-user              `user: root` / `USER root`, or a Dockerfile with no USER
    unpinned-image         `:latest` or untagged images (image: / FROM)
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

import yaml

from sentinelhub.exceptions import ToolParseError
from sentinelhub.scanner.base import AdapterOptions, BaseAdapter, ContainerConfigRaw, ScanUnit

logger = logging.getLogger(__name__)

COMPOSE_NAMES = ("docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml")
DOCKER_SOCKET = "/var/run/docker.sock"


def is_compose_file(path: str) -> bool:
    name = path.rsplit("/", 1)[-1].lower()
    return name in COMPOSE_NAMES or (name.startswith("docker-compose") and name.endswith((".yml", ".yaml")))


def is_dockerfile(path: str) -> bool:
    name = path.rsplit("/", 1)[-1]
    return name == "Dockerfile" or name.startswith("Dockerfile.") or name.endswith(".dockerfile")


def _line_of(content: str, needle: str) -> Optional[int]:
    for idx, line in enumerate(content.splitlines(), start=1):
        if needle in line:
            return idx
    return None


def _image_unpinned(image: str) -> bool:
    if "@sha256:" in image:
        return False
    last = image.rsplit("/", 1)[-1]
    return ":" not in last or last.endswith(":latest")


def audit_compose(content: str, path: str) -> List[ContainerConfigRaw]:
    doc = yaml.safe_load(content) or {}
    if not isinstance(doc, dict):
        return []
    services = doc.get("services") or {}
    if not isinstance(services, dict):
        raise ToolParseError("container-config", f"{path}: services must be a mapping, got {type(services).__name__}")
    raws: List[ContainerConfigRaw] = []

    for service, spec in services.items():
        if not isinstance(spec, dict):
            continue
        image = spec.get("image")

        if spec.get("privileged") is True:
            raws.append(ContainerConfigRaw(
                check="privileged-container", privileged=True,
                message=f"Service '{service}' runs in privileged mode",
                file=path, line=_line_of(content, "privileged"), service=service, image=image,
            ))

        for volume in spec.get("volumes") or []:
            source = volume if isinstance(volume, str) else (volume or {}).get("source", "")
            if DOCKER_SOCKET in str(source):
                raws.append(ContainerConfigRaw(
                    check="docker-socket-mount",
                    message=f"Service '{service}' mounts the Docker socket",
                    file=path, line=_line_of(content, DOCKER_SOCKET), service=service, image=image,
                ))
                break

        if spec.get("network_mode") == "host":
            raws.append(ContainerConfigRaw(
                check="host-network",
                message=f"Service '{service}' uses host networking",
                file=path, line=_line_of(content, "network_mode"), service=service, image=image,
            ))

        if str(spec.get("user", "")).split(":", 1)[0] in ("root", "0"):
            raws.append(ContainerConfigRaw(
                check="root-user",
                message=f"Service '{service}' runs as root",
                file=path, line=_line_of(content, "user:"), service=service, image=image,
            ))

        if image and _image_unpinned(str(image)):
            raws.append(ContainerConfigRaw(
                check="unpinned-image",
                message=f"Service '{service}' uses unpinned image '{image}'",
                file=path, line=_line_of(content, str(image)), service=service, image=image,
            ))
    return raws


_FROM_RE = re.compile(r"^\s*FROM\s+(?:--platform=\S+\s+)?(\S+)", re.IGNORECASE)
_USER_RE = re.compile(r"^\s*USER\s+(\S+)", re.IGNORECASE)


def audit_dockerfile(content: str, path: str) -> List[ContainerConfigRaw]:
    raws: List[ContainerConfigRaw] = []
    last_user: Optional[str] = None
    last_user_line: Optional[int] = None
    stages = set()

    for idx, line in enumerate(content.splitlines(), start=1):
        m = _FROM_RE.match(line)
        if m:
            image = m.group(1)
            alias = re.search(r"\bAS\s+(\S+)", line, re.IGNORECASE)
            if alias:
                stages.add(alias.group(1).lower())
            if image.lower() != "scratch" and image.lower() not in stages and _image_unpinned(image):
                raws.append(ContainerConfigRaw(
                    check="unpinned-image",
                    message=f"Base image '{image}' is not pinned to a version",
                    file=path, line=idx, image=image,
                ))
            last_user, last_user_line = None, None
            continue
        m = _USER_RE.match(line)
        if m:
            last_user, last_user_line = m.group(1), idx

    if last_user is None or last_user.split(":", 1)[0] in ("root", "0"):
        raws.append(ContainerConfigRaw(
            check="root-user",
            message="Container runs as root (no non-root USER instruction)",
            file=path, line=last_user_line,
        ))
    return raws


class ContainerConfigAdapter(BaseAdapter):
    """Compose / Dockerfile misconfiguration checks."""

    @property
    def name(self) -> str:
        return "container-config"

    def supports(self, unit: ScanUnit) -> bool:
        return unit.has_content and (is_compose_file(unit.path) or is_dockerfile(unit.path))

    def execute(self, unit: ScanUnit, options: AdapterOptions) -> List[ContainerConfigRaw]:
        content = unit.load()
        if content is None:
            return []
        if is_dockerfile(unit.path):
            return audit_dockerfile(content, unit.path)
        try:
            return audit_compose(content, unit.path)
        except yaml.YAMLError as e:
            raise ValueError(f"invalid compose file: {e}")
