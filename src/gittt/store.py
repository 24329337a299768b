import contextlib
import json
import logging
import os
import shutil
from dataclasses import replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    JSON_INDENT,
    PROJECTS_DIR_NAME,
)
from .errors import (
    AmbiguousLinkError,
    AmbiguousProjectError,
    InitError,
    ReadError,
    WriteError,
)
from .models import (
    ConfigFile,
    IntegrationLink,
    Project,
    domain_to_dirname,
    epoch_ms,
)

logger = logging.getLogger(APP_NAME)


def read_json(path: Path) -> Any:
    """Reads and parses a JSON document.

    Raises:
        ReadError: If the file is missing, unreadable or not valid JSON.
    """
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise ReadError(f"Unable to read {path}: {e}") from e


def write_json_atomic(path: Path, data: Any) -> None:
    """Persists a JSON document to disk atomically.

    The document is written to a sibling temp file, flushed, and swapped into
    place with `os.replace`, so readers never observe a partial file.

    Raises:
        WriteError: If any step of the write fails.
    """
    tmp_file = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp_file, "w") as f:
            json.dump(data, f, indent=JSON_INDENT, allow_nan=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_file, path)
    except (OSError, TypeError, ValueError) as e:
        if tmp_file.exists():
            with contextlib.suppress(OSError):
                tmp_file.unlink()
        raise WriteError(f"Unable to write {path}: {e}") from e


class ConfigCache:
    """Process-lifetime cache for the parsed `config.json`.

    `invalidate` is the single entry point for dropping it; anything that
    rewrites the working copy behind the store's back must call it.
    """

    def __init__(self) -> None:
        self._value: ConfigFile | None = None

    def get(self) -> ConfigFile | None:
        return self._value

    def set(self, value: ConfigFile) -> None:
        self._value = value

    def invalidate(self) -> None:
        self._value = None


class RecordStore:
    """Domain-partitioned JSON persistence for projects and the config file.

    Layout under `root`:

        config.json
        projects/<domain-dir>/<project>.json

    Attributes:
        root (Path): The store root (also the git working copy).
        cache (ConfigCache): The in-memory config cache.
    """

    def __init__(self, root: Path):
        self.root = root
        self.config_path = root / CONFIG_FILE_NAME
        self.projects_dir = root / PROJECTS_DIR_NAME
        self.cache = ConfigCache()

    def ensure_root(self) -> None:
        """Creates the store root directory if it does not exist."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InitError(f"Unable to create store directory {self.root}: {e}") from e

    # --- Config ---

    def config_exists(self) -> bool:
        return self.config_path.is_file() and os.access(self.config_path, os.R_OK)

    def is_config_valid(self) -> bool:
        """Returns True if the config file exists and parses as a config."""
        try:
            self._read_config_from_disk()
            return True
        except ReadError as e:
            logger.debug(f"Config file is not valid: {e}")
            return False

    def _read_config_from_disk(self) -> ConfigFile:
        data = read_json(self.config_path)
        try:
            return ConfigFile.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ReadError(f"Invalid config file {self.config_path}: {e}") from e

    def get_config(self, force_reload: bool = False) -> ConfigFile:
        """Returns the config, reading it from disk only when needed.

        Args:
            force_reload (bool, optional): Bypass the cache. Defaults to False.

        Raises:
            ReadError: If the config file is missing or invalid; callers treat
                       this as "store not initialized".
        """
        cached = self.cache.get()
        if cached is not None and not force_reload:
            return cached

        config = self._read_config_from_disk()
        self.cache.set(config)
        return config

    def save_config(self, config: ConfigFile) -> None:
        """Writes the config atomically and refreshes the cache.

        On failure the previously cached value is kept.

        Raises:
            WriteError: If the file could not be written.
        """
        write_json_atomic(self.config_path, config.to_dict())
        self.cache.set(config)

    def init_config(self, git_repo: str) -> ConfigFile:
        """Writes a fresh config bound to `git_repo`."""
        config = ConfigFile(created=epoch_ms(), git_repo=git_repo, links=[])
        self.save_config(config)
        return config

    def invalidate_cache(self) -> None:
        self.cache.invalidate()

    # --- Projects ---

    def _domain_dir(self, domain: str) -> Path:
        return self.projects_dir / domain_to_dirname(domain)

    def _project_path(self, project: Project) -> Path:
        return self.projects_dir / project.relative_path

    def _load_project(self, path: Path) -> Project:
        data = read_json(path)
        try:
            return Project.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ReadError(f"Invalid project file {path}: {e}") from e

    def _domain_dirs(self) -> list[Path]:
        if not self.projects_dir.is_dir():
            return []
        return sorted(p for p in self.projects_dir.iterdir() if p.is_dir())

    def init_project(self, project: Project) -> Project:
        """Creates the domain directory and writes the project file.

        Raises:
            InitError: Wrapping the underlying I/O failure.
        """
        try:
            self._domain_dir(project.domain).mkdir(parents=True, exist_ok=True)
            write_json_atomic(self._project_path(project), project.to_dict())
        except (OSError, WriteError) as e:
            raise InitError(f'Unable to initialize project "{project.name}": {e}') from e

        logger.debug(f"Initialized project file {project.relative_path}")
        return project

    def save_project(self, project: Project) -> None:
        """Overwrites the project file. Last writer wins."""
        write_json_atomic(self._project_path(project), project.to_dict())

    def find_project_by_name(self, name: str, domain: str | None = None) -> Project | None:
        """Looks up a project by name, optionally within one domain.

        Args:
            name (str): The project name.
            domain (str | None, optional): A `host:port` domain to restrict
                                           the search to. Defaults to None.

        Returns:
            Project | None: The project, or None if no file matches.

        Raises:
            AmbiguousProjectError: If no domain is given and several domains
                                   contain a project with this name.
        """
        filename = f"{name}.json"

        if domain is not None:
            path = self._domain_dir(domain) / filename
            return self._load_project(path) if path.is_file() else None

        matches = [d / filename for d in self._domain_dirs() if (d / filename).is_file()]

        if len(matches) > 1:
            raise AmbiguousProjectError(name, [m.parent.name for m in matches])
        if not matches:
            return None
        return self._load_project(matches[0])

    def find_projects_for_domain(self, domain: str) -> list[Project]:
        """Lists the projects of one domain. Empty if the domain is unknown."""
        domain_dir = self._domain_dir(domain)
        if not domain_dir.is_dir():
            return []
        return [self._load_project(p) for p in sorted(domain_dir.glob("*.json"))]

    def find_all_projects(self) -> list[Project]:
        projects = []
        for domain_dir in self._domain_dirs():
            projects.extend(
                self._load_project(p) for p in sorted(domain_dir.glob("*.json"))
            )
        return projects

    def remove_project_file(self, project: Project) -> None:
        try:
            self._project_path(project).unlink()
        except OSError as e:
            raise WriteError(f'Unable to remove project "{project.name}": {e}') from e

    def remove_domain_directory(self, domain: str, force: bool = False) -> None:
        """Removes a domain directory; `force` removes it with its contents."""
        domain_dir = self._domain_dir(domain)
        try:
            if force:
                shutil.rmtree(domain_dir)
            else:
                domain_dir.rmdir()
        except OSError as e:
            raise WriteError(f"Unable to remove domain {domain}: {e}") from e

    # --- Links ---

    def find_links_by_project(
        self, project_name: str, link_type: str | None = None
    ) -> list[IntegrationLink]:
        config = self.get_config()
        return [
            li
            for li in config.links
            if li.project_name == project_name
            and (link_type is None or li.link_type == link_type)
        ]

    def add_or_update_link(self, link: IntegrationLink) -> ConfigFile:
        """Stores a link, replacing the one with the same (project, type) key.

        A replaced link keeps its position in `links`; a new one is appended.

        Raises:
            AmbiguousLinkError: If the config already holds several links for
                                this key.
        """
        config = self.get_config()
        positions = [
            i
            for i, li in enumerate(config.links)
            if li.project_name == link.project_name and li.link_type == link.link_type
        ]

        if len(positions) > 1:
            raise AmbiguousLinkError(
                f'Found {len(positions)} "{link.link_type}" links '
                f'for project "{link.project_name}"'
            )

        links = list(config.links)
        if positions:
            links[positions[0]] = link
        else:
            links.append(link)

        updated = replace(config, links=links)
        self.save_config(updated)
        return updated

    def rename_project_links(self, old_name: str, new_name: str) -> int:
        """Re-keys every link of `old_name` to `new_name`, keeping positions.

        Returns:
            int: The number of links re-keyed.
        """
        config = self.get_config()
        renamed = 0
        links = []
        for li in config.links:
            if li.project_name == old_name:
                li = replace(li, project_name=new_name)
                renamed += 1
            links.append(li)

        if renamed:
            self.save_config(replace(config, links=links))
        return renamed
