"""Layered configuration store.

One document holds the base configuration and schema of every registered
module plus named environments. An environment's ``settings`` map overlays
per-module values on top of the base; the current environment decides which
overlay callers see.
"""

from __future__ import annotations

import copy
import logging
import re
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .backup import BackupInfo, BackupManager
from .errors import (
    ConfigurationError,
    ConfigurationValidationError,
    UnknownEnvironmentError,
    UnknownModuleError,
)
from .events import EventBus, EventJournal
from .hot_reload import HotReloadWatcher
from .merge import ConfigDifference, compare_configuration, get_path, merge_configuration, merge_many, set_path
from .paths import CoreSettings, default_journal_path
from .schema import (
    SchemaDefinitionError,
    ValidationIssue,
    schema_defaults,
    validate_configuration,
    validate_schema_definition,
)
from .store_io import (
    DEFAULT_ENVIRONMENT,
    STORE_VERSION,
    content_digest,
    ensure_defaults,
    load_store,
    new_environment_entry,
    save_store,
    utc_now,
)
from .variables import expand_variables

logger = logging.getLogger(__name__)

ModuleCallback = Callable[[str, Dict[str, Any]], Any]

_ENV_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")
IMPORT_MODES = ("merge", "replace")


class ConfigurationCore:
    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        settings: Optional[CoreSettings] = None,
        bus: Optional[EventBus] = None,
        journal: bool = False,
    ):
        settings = settings or CoreSettings.from_env()
        if store_path is not None:
            settings = settings.with_store_path(store_path)
        self.settings = settings
        self.store_path = Path(settings.store_path)

        if bus is None:
            bus = EventBus(journal=EventJournal(default_journal_path(self.store_path)) if journal else None)
        self.bus = bus
        self.backups = BackupManager(settings.backup_dir, keep=settings.backup_keep)

        self._store: Dict[str, Any] = {}
        self._callbacks: Dict[str, ModuleCallback] = {}
        self._watcher: Optional[HotReloadWatcher] = None
        self._last_digest: Optional[str] = None
        self._loaded = False
        self._lock = threading.RLock()

    def __enter__(self) -> "ConfigurationCore":
        return self.initialize()

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def initialize(self, *, resume_hot_reload: bool = False) -> "ConfigurationCore":
        with self._lock:
            existed = self.store_path.exists()
            self._store = self._read_store(self.store_path)
            dirty = not existed

            wanted = self.settings.environment
            if wanted and wanted != self._store["current_environment"]:
                if wanted in self._store["environments"]:
                    logger.info("Selecting environment %s from AITHER_ENVIRONMENT", wanted)
                    self._store["current_environment"] = wanted
                    dirty = True
                else:
                    logger.warning("AITHER_ENVIRONMENT=%s does not exist, keeping %s", wanted, self._store["current_environment"])

            self._loaded = True
            if dirty:
                self._save()
            else:
                self._last_digest = content_digest(self.store_path)

            logger.info(
                "Configuration store ready (path=%s, environment=%s, modules=%d)",
                self.store_path,
                self._store["current_environment"],
                len(self._store["modules"]),
            )

            if resume_hot_reload and self._store["hot_reload"].get("enabled"):
                self._start_watcher()
        return self

    def close(self) -> None:
        """Stop the file watcher; the persisted hot reload flag is left alone."""
        with self._lock:
            watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()

    def _read_store(self, path: Path) -> Dict[str, Any]:
        try:
            return ensure_defaults(load_store(path))
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration store {path}: {e}") from e

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.initialize()

    def _save(self) -> None:
        self._store["metadata"]["last_modified"] = utc_now()
        self._last_digest = save_store(self.store_path, self._store)

    @property
    def store(self) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            return copy.deepcopy(self._store)

    def reload(self) -> Dict[str, Any]:
        """Re-read the store file and notify module callbacks."""

        with self._lock:
            self._ensure_loaded()
            try:
                data = self._read_store(self.store_path)
            except (ConfigurationError, OSError) as e:
                logger.error("Reload of %s failed, keeping in-memory configuration: %s", self.store_path, e)
                if isinstance(e, ConfigurationError):
                    raise
                raise ConfigurationError(f"Cannot read {self.store_path}: {e}") from e

            self._store = data
            self._last_digest = content_digest(self.store_path)
            modules = sorted(self._store["modules"])
            logger.info("Reloaded configuration from %s", self.store_path)

            self.bus.publish(
                "ConfigurationReloaded",
                {"path": str(self.store_path), "environment": self.current_environment, "modules": modules},
            )
            self._notify(modules)
            return copy.deepcopy(self._store)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @property
    def current_environment(self) -> str:
        with self._lock:
            self._ensure_loaded()
            return self._store["current_environment"]

    def _env(self, name: Optional[str]) -> Dict[str, Any]:
        name = name or self._store["current_environment"]
        env = self._store["environments"].get(name)
        if env is None:
            raise UnknownEnvironmentError(name)
        return env

    def _base(self, module: str) -> Dict[str, Any]:
        base = self._store["modules"].get(module)
        if base is None:
            raise UnknownModuleError(module)
        return base

    def _schema(self, module: str) -> Dict[str, Any]:
        return self._store["schemas"].get(module) or {}

    def _resolved(self, module: str, environment: Optional[str] = None) -> Dict[str, Any]:
        base = self._base(module)
        overlay = self._env(environment)["settings"].get(module) or {}
        return merge_configuration(base, overlay)

    def _resolve_reference(self, ref: str, environment: Optional[str] = None) -> Any:
        module, _, key = ref.partition(".")
        if module not in self._store["modules"]:
            return None
        cfg = self._resolved(module, environment)
        return get_path(cfg, key) if key else cfg

    def _notify(self, modules: Iterable[str]) -> None:
        for name in modules:
            cb = self._callbacks.get(name)
            if cb is None or name not in self._store["modules"]:
                continue
            try:
                cb(name, self.get_module_configuration(name))
            except Exception:
                logger.exception("Configuration callback for module %s failed", name)

    @staticmethod
    def _prefixed(prefix: str, issues: Iterable[ValidationIssue]) -> List[ValidationIssue]:
        return [ValidationIssue(f"{prefix}.{i.path}" if i.path else prefix, i.message) for i in issues]

    def _collect_issues(self, store: Dict[str, Any], environments: Optional[Iterable[str]] = None) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        usable: Dict[str, Dict[str, Any]] = {}
        for name, schema in sorted(store["schemas"].items()):
            try:
                validate_schema_definition(schema or {})
            except SchemaDefinitionError as e:
                issues.append(ValidationIssue(f"schemas.{name}", str(e)))
                continue
            if schema:
                usable[name] = schema

        modules: Dict[str, Dict[str, Any]] = {}
        for name, base in sorted(store["modules"].items()):
            if isinstance(base, dict):
                modules[name] = base
            else:
                issues.append(ValidationIssue(f"modules.{name}", "base configuration must be a mapping"))

        envs = store["environments"]
        for env_name in environments if environments is not None else sorted(envs):
            settings = envs[env_name].get("settings") or {}
            for module, base in modules.items():
                if module not in usable:
                    continue
                resolved = merge_configuration(base, settings.get(module) or {})
                issues.extend(self._prefixed(f"{env_name}:{module}", validate_configuration(resolved, usable[module])))
        return issues

    # ------------------------------------------------------------------
    # modules
    # ------------------------------------------------------------------

    def register_module(
        self,
        name: str,
        schema: Optional[Dict[str, Any]] = None,
        defaults: Optional[Dict[str, Any]] = None,
        *,
        on_change: Optional[ModuleCallback] = None,
    ) -> Dict[str, Any]:
        """Register (or re-register) a module; previously stored values are kept.

        Re-registering without a schema keeps the schema stored earlier.
        """

        if not isinstance(name, str) or not name.strip():
            raise ValueError("Module name must be a non-empty string")
        if schema:
            validate_schema_definition(schema)

        with self._lock:
            self._ensure_loaded()
            if schema is None:
                schema = self._store["schemas"].get(name) or None
            existing = self._store["modules"].get(name) or {}
            base = merge_many(schema_defaults(schema), defaults, existing)

            issues = validate_configuration(base, schema, check_required=False)
            if issues:
                raise ConfigurationValidationError(name, issues)

            self._store["modules"][name] = base
            self._store["schemas"][name] = copy.deepcopy(schema) if schema else {}
            for env in self._store["environments"].values():
                env["settings"].setdefault(name, {})
            if on_change is not None:
                self._callbacks[name] = on_change

            self._save()
            logger.info("Registered module %s", name)
            self.bus.publish("ModuleRegistered", {"module": name, "environment": self.current_environment})
            return self.get_module_configuration(name)

    def unregister_module(self, name: str) -> None:
        with self._lock:
            self._ensure_loaded()
            self._base(name)
            del self._store["modules"][name]
            self._store["schemas"].pop(name, None)
            for env in self._store["environments"].values():
                env["settings"].pop(name, None)
            self._callbacks.pop(name, None)
            self._save()
            logger.info("Unregistered module %s", name)
            self.bus.publish("ModuleUnregistered", {"module": name})

    def list_modules(self) -> List[str]:
        with self._lock:
            self._ensure_loaded()
            return sorted(self._store["modules"])

    def get_schema(self, name: str) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            self._base(name)
            return copy.deepcopy(self._schema(name))

    def get_module_configuration(
        self,
        name: str,
        environment: Optional[str] = None,
        *,
        expand: bool = True,
    ) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            env_name = environment or self._store["current_environment"]
            resolved = self._resolved(name, env_name)
            if expand:
                return expand_variables(resolved, resolver=lambda ref: self._resolve_reference(ref, env_name))
            return resolved

    def set_module_configuration(
        self,
        name: str,
        config: Dict[str, Any],
        environment: Optional[str] = None,
        *,
        merge: bool = True,
        validate: bool = True,
    ) -> Dict[str, Any]:
        if not isinstance(config, dict):
            raise TypeError("config must be a dict")

        with self._lock:
            self._ensure_loaded()
            env_name = environment or self._store["current_environment"]
            env = self._env(env_name)
            base = self._base(name)

            old_overlay = env["settings"].get(name) or {}
            new_overlay = merge_configuration(old_overlay, config) if merge else copy.deepcopy(config)
            before = merge_configuration(base, old_overlay)
            after = merge_configuration(base, new_overlay)

            if validate:
                issues = validate_configuration(after, self._schema(name))
                if issues:
                    raise ConfigurationValidationError(name, issues)

            env["settings"][name] = new_overlay
            self._save()

            changed = [d.path for d in compare_configuration(before, after)]
            logger.info("Updated %s in environment %s (%d change(s))", name, env_name, len(changed))
            self.bus.publish(
                "ModuleConfigurationChanged",
                {"module": name, "environment": env_name, "changed": changed},
            )
            if env_name == self._store["current_environment"]:
                self._notify([name])
            return self.get_module_configuration(name, env_name)

    def get_value(self, name: str, key: str, default: Any = None, environment: Optional[str] = None) -> Any:
        return get_path(self.get_module_configuration(name, environment), key, default)

    def set_value(self, name: str, key: str, value: Any, environment: Optional[str] = None) -> Dict[str, Any]:
        return self.set_module_configuration(name, set_path({}, key, value), environment, merge=True)

    def test_module_configuration(
        self,
        name: str,
        config: Optional[Dict[str, Any]] = None,
        environment: Optional[str] = None,
    ) -> List[ValidationIssue]:
        with self._lock:
            self._ensure_loaded()
            target = config if config is not None else self._resolved(name, environment)
            if config is not None:
                self._base(name)
            return validate_configuration(target, self._schema(name))

    def validate_all(self, environment: Optional[str] = None) -> Dict[str, List[ValidationIssue]]:
        with self._lock:
            self._ensure_loaded()
            env_name = environment or self._store["current_environment"]
            self._env(env_name)
            out: Dict[str, List[ValidationIssue]] = {}
            for name in sorted(self._store["modules"]):
                issues = validate_configuration(self._resolved(name, env_name), self._schema(name))
                if issues:
                    out[name] = issues
            return out

    # ------------------------------------------------------------------
    # environments
    # ------------------------------------------------------------------

    def list_environments(self) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_loaded()
            current = self._store["current_environment"]
            return [
                {
                    "name": name,
                    "description": env.get("description", ""),
                    "created": env.get("created"),
                    "current": name == current,
                }
                for name, env in sorted(self._store["environments"].items())
            ]

    def get_current_environment(self) -> str:
        return self.current_environment

    def new_environment(self, name: str, description: str = "", copy_from: Optional[str] = None) -> Dict[str, Any]:
        if not isinstance(name, str) or not _ENV_NAME.match(name):
            raise ValueError(f"Invalid environment name: {name!r}")

        with self._lock:
            self._ensure_loaded()
            envs = self._store["environments"]
            if name in envs:
                raise ConfigurationError(f"Environment already exists: {name}")

            entry = new_environment_entry(name, description)
            if copy_from is not None:
                entry["settings"] = copy.deepcopy(self._env(copy_from)["settings"])
            for module in self._store["modules"]:
                entry["settings"].setdefault(module, {})

            envs[name] = entry
            self._save()
            logger.info("Created environment %s%s", name, f" (copy of {copy_from})" if copy_from else "")
            self.bus.publish("EnvironmentCreated", {"environment": name, "copy_from": copy_from})
            return copy.deepcopy(entry)

    def set_current_environment(self, name: str, *, force: bool = False) -> str:
        with self._lock:
            self._ensure_loaded()
            self._env(name)
            previous = self._store["current_environment"]

            issues = self._collect_issues(self._store, environments=[name])
            if issues:
                if not force:
                    raise ConfigurationValidationError(
                        None, issues, f"Environment '{name}' has invalid configuration: "
                        + "; ".join(str(i) for i in issues[:5])
                    )
                logger.warning("Switching to %s despite %d validation issue(s)", name, len(issues))

            self._store["current_environment"] = name
            self._save()
            logger.info("Switched environment %s -> %s", previous, name)
            self.bus.publish("EnvironmentChanged", {"previous": previous, "environment": name})
            self._notify(sorted(self._store["modules"]))
            return previous

    def remove_environment(self, name: str) -> None:
        with self._lock:
            self._ensure_loaded()
            self._env(name)
            if name == DEFAULT_ENVIRONMENT:
                raise ConfigurationError("The default environment cannot be removed")
            if name == self._store["current_environment"]:
                raise ConfigurationError(f"Cannot remove the current environment: {name}")
            del self._store["environments"][name]
            self._save()
            logger.info("Removed environment %s", name)
            self.bus.publish("EnvironmentRemoved", {"environment": name})

    def compare_environments(self, left: str, right: str, module: Optional[str] = None) -> List[ConfigDifference]:
        with self._lock:
            self._ensure_loaded()
            self._env(left)
            self._env(right)
            modules = [module] if module else sorted(self._store["modules"])
            diffs: List[ConfigDifference] = []
            for name in modules:
                diffs.extend(
                    compare_configuration(
                        self._resolved(name, left),
                        self._resolved(name, right),
                        prefix=name,
                    )
                )
            return diffs

    # ------------------------------------------------------------------
    # hot reload
    # ------------------------------------------------------------------

    def _on_file_changed(self, path: Path) -> None:
        # Holding the lock makes our own in-flight save finish (and record its digest) first.
        with self._lock:
            digest = content_digest(path)
            if digest is None or digest == self._last_digest:
                return
            logger.info("Detected external change to %s", path)
            self.reload()

    def _start_watcher(self) -> None:
        if self._watcher is None:
            self._watcher = HotReloadWatcher(self.store_path, self._on_file_changed)
        self._watcher.start()

    def enable_hot_reload(self) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            self._store["hot_reload"]["enabled"] = True
            self._save()
            self._start_watcher()
            self.bus.publish("HotReloadEnabled", {"path": str(self.store_path)})
            return self.hot_reload_status()

    def disable_hot_reload(self) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            self._store["hot_reload"]["enabled"] = False
            self._save()
        # The observer thread may be waiting on the lock; stop it without holding it.
        self.close()
        self.bus.publish("HotReloadDisabled", {"path": str(self.store_path)})
        return self.hot_reload_status()

    def hot_reload_status(self) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            return {
                "enabled": bool(self._store["hot_reload"].get("enabled")),
                "watching": self._watcher is not None and self._watcher.is_running,
                "path": str(self.store_path),
            }

    # ------------------------------------------------------------------
    # backup / restore / export / import
    # ------------------------------------------------------------------

    def backup(self, reason: Optional[str] = None) -> BackupInfo:
        with self._lock:
            self._ensure_loaded()
            if not self.store_path.exists():
                self._save()
            info = self.backups.create(self.store_path, reason=reason)
            self.bus.publish("BackupCreated", {"backup": info.name, "reason": reason})
            return info

    def list_backups(self) -> List[BackupInfo]:
        return self.backups.list()

    def restore(self, name_or_path: str | Path, *, backup_current: bool = True) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            src = self.backups.resolve(name_or_path)
            data = self._read_store(src)

            if backup_current and self.store_path.exists():
                self.backups.create(self.store_path, reason="pre-restore")

            # Runtime watcher state wins over whatever the backup recorded.
            data["hot_reload"] = copy.deepcopy(self._store["hot_reload"])
            self._store = data
            self._save()
            logger.info("Restored configuration from %s", src)
            self.bus.publish("ConfigurationRestored", {"source": str(src)})
            self._notify(sorted(self._store["modules"]))
            return copy.deepcopy(self._store)

    def export(
        self,
        path: str | Path,
        *,
        modules: Optional[Iterable[str]] = None,
        environment: Optional[str] = None,
        include_schemas: bool = True,
    ) -> Path:
        with self._lock:
            self._ensure_loaded()
            selected = sorted(modules) if modules is not None else sorted(self._store["modules"])
            for name in selected:
                self._base(name)

            env_names = [environment] if environment else sorted(self._store["environments"])
            envs: Dict[str, Any] = {}
            for env_name in env_names:
                env = copy.deepcopy(self._env(env_name))
                env["settings"] = {m: v for m, v in env["settings"].items() if m in selected}
                envs[env_name] = env

            doc: Dict[str, Any] = {
                "version": STORE_VERSION,
                "current_environment": environment or self._store["current_environment"],
                "modules": {m: copy.deepcopy(self._store["modules"][m]) for m in selected},
                "environments": envs,
                "metadata": {"exported_at": utc_now(), "source": str(self.store_path)},
            }
            if include_schemas:
                doc["schemas"] = {m: copy.deepcopy(self._schema(m)) for m in selected}

            out = Path(path).expanduser()
            save_store(out, doc)
            logger.info("Exported %d module(s) to %s", len(selected), out)
            self.bus.publish("ConfigurationExported", {"path": str(out), "modules": selected})
            return out

    def import_(
        self,
        path: str | Path,
        *,
        mode: str = "merge",
        backup_current: bool = True,
    ) -> Dict[str, Any]:
        if mode not in IMPORT_MODES:
            raise ValueError(f"mode must be one of {IMPORT_MODES}, got {mode!r}")

        src = Path(path).expanduser()
        if not src.is_file():
            raise ConfigurationError(f"Import file not found: {src}")

        with self._lock:
            self._ensure_loaded()
            try:
                incoming = load_store(src)
            except ValueError as e:
                raise ConfigurationError(f"Invalid import file {src}: {e}") from e

            if mode == "replace":
                candidate = copy.deepcopy(incoming)
            else:
                layer = {k: incoming[k] for k in ("modules", "schemas", "environments") if k in incoming}
                candidate = merge_configuration(self._store, layer)
            candidate["hot_reload"] = copy.deepcopy(self._store["hot_reload"])

            try:
                ensure_defaults(candidate)
            except ValueError as e:
                raise ConfigurationError(f"Invalid import file {src}: {e}") from e

            issues = self._collect_issues(candidate)
            if issues:
                raise ConfigurationValidationError(None, issues)

            if backup_current and self.store_path.exists():
                self.backups.create(self.store_path, reason="pre-import")

            self._store = candidate
            self._save()
            imported = sorted((incoming.get("modules") or {}).keys())
            logger.info("Imported %s (%s mode, %d module(s))", src, mode, len(imported))
            self.bus.publish("ConfigurationImported", {"path": str(src), "mode": mode, "modules": imported})
            self._notify(sorted(self._store["modules"]))
            return copy.deepcopy(self._store)
