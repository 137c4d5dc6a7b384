"""Event processors that enrich or filter events before they are sent."""

from __future__ import annotations

import logging
import os
import platform
import re
import sys
import sysconfig
import threading
from dataclasses import dataclass, field
from email.parser import HeaderParser
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from .protocol import Event, EventHint

logger = logging.getLogger("sentrykit")


# ================================
# Modules
# ================================


@dataclass
class BuildModule:
    """A module that is part of a build, possibly replaced by another one."""

    path: str = ""
    version: str = ""
    replace: Optional["BuildModule"] = None


@dataclass
class BuildInfo:
    """The main module of a program and the modules it depends on."""

    main: BuildModule = field(default_factory=BuildModule)
    deps: list[BuildModule] = field(default_factory=list)


def extract_modules(info: BuildInfo) -> dict[str, str]:
    """Map every module path in ``info`` to its version, noting replacements."""
    modules = {info.main.path: info.main.version}
    for dep in info.deps:
        version = dep.version
        if dep.replace is not None:
            version += f" => {dep.replace.path} {dep.replace.version}"
        modules[dep.path] = version.removesuffix(" ")
    return modules


def _site_directories() -> list[Path]:
    paths = sysconfig.get_paths()
    seen: list[Path] = []
    for key in ("purelib", "platlib"):
        location = paths.get(key)
        if location:
            directory = Path(location)
            if directory not in seen and directory.is_dir():
                seen.append(directory)
    return seen


def _installed_distributions() -> Iterator[BuildModule]:
    parser = HeaderParser()
    for directory in _site_directories():
        for dist_info in sorted(directory.glob("*.dist-info")):
            metadata_file = dist_info / "METADATA"
            try:
                text = metadata_file.read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue
            headers = parser.parsestr(text)
            name = headers.get("Name")
            if name:
                yield BuildModule(path=name, version=headers.get("Version") or "")


def _read_build_info() -> Optional[BuildInfo]:
    main_path = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "__main__"
    deps = list(_installed_distributions())
    return BuildInfo(main=BuildModule(path=main_path, version="(devel)"), deps=deps)


class ModulesIntegration:
    """Attaches the list of installed modules to every event."""

    name = "Modules"

    def __init__(
        self, load_build_info: Callable[[], Optional[BuildInfo]] = _read_build_info
    ) -> None:
        self._load_build_info = load_build_info
        self._lock = threading.Lock()
        self._loaded = False
        self._modules: dict[str, str] = {}

    def _load(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._loaded = True
            info = self._load_build_info()
            if info is None:
                logger.info("The Modules integration is not available without build information.")
                return
            self._modules = extract_modules(info)

    def processor(self, event: Event, hint: Optional[EventHint] = None) -> Event:
        """Set the event's modules, reading build information once."""
        if not event.modules:
            self._load()
        event.modules = dict(self._modules)
        return event


# ================================
# Environment
# ================================


class EnvironmentIntegration:
    """Adds device, operating system and runtime contexts, keeping existing values."""

    name = "Environment"

    def processor(self, event: Event, hint: Optional[EventHint] = None) -> Event:
        """Fill in missing context values and return the event."""
        if event.contexts is None:
            event.contexts = {}
        for context_name in ("device", "os", "runtime"):
            if event.contexts.get(context_name) is None:
                event.contexts[context_name] = {}

        device = event.contexts["device"]
        device.setdefault("arch", platform.machine())
        device.setdefault("num_cpu", os.cpu_count())

        event.contexts["os"].setdefault("name", sys.platform)

        runtime = event.contexts["runtime"]
        runtime.setdefault("name", platform.python_implementation().lower())
        runtime.setdefault("version", platform.python_version())
        runtime.setdefault("num_threads", threading.active_count())
        return event


# ================================
# Ignore errors
# ================================


def transform_strings_into_regexps(strings: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile each string, silently skipping those that are not valid patterns."""
    expressions = []
    for text in strings:
        try:
            expressions.append(re.compile(text))
        except re.error:
            continue
    return expressions


def get_ignore_errors_suspects(event: Event) -> list[str]:
    """Return the message and every exception type and value of an event."""
    suspects = []
    if event.message:
        suspects.append(event.message)
    for exception in event.exception:
        suspects.extend((exception.type, exception.value))
    return suspects


class IgnoreErrorsIntegration:
    """Drops events whose message or exceptions match any configured pattern."""

    name = "IgnoreErrors"

    def __init__(self, ignore_errors: Iterable[str] = ()) -> None:
        self.ignore_errors = transform_strings_into_regexps(ignore_errors)

    def processor(self, event: Event, hint: Optional[EventHint] = None) -> Optional[Event]:
        """Return the event, or ``None`` if it is to be dropped."""
        for suspect in get_ignore_errors_suspects(event):
            for pattern in self.ignore_errors:
                if pattern.search(suspect):
                    logger.info(
                        "Event dropped due to being matched by `IgnoreErrors` option."
                        "| Value matched: %s | Filter used: %s",
                        suspect,
                        pattern.pattern,
                    )
                    return None
        return event