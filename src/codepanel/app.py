"""Application bootstrap for the codepanel chat process."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import AssistantClient, ClientSettings
from .chat.controller import ChatController
from .chat.telemetry import TelemetryClient
from .editor.content import SnapshotContentController
from .editor.context import SnapshotContextExtractor
from .editor.state import EditorState
from .events import EventBus
from .services.auth import ApiKeyCredentialProvider
from .services.bridge import StdioBridge
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)
_DEFAULT_DRAIN_TIMEOUT = 30.0


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging for the process."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def build_client(settings: Settings, *, debug_logging: bool = False) -> AssistantClient:
    client_settings = ClientSettings(
        base_url=settings.base_url,
        api_key=settings.api_key,
        model=settings.model,
        organization=settings.organization,
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        default_headers=settings.default_headers,
        temperature=settings.temperature,
        system_prompt=settings.system_prompt,
        debug_logging=debug_logging or settings.debug_logging,
    )
    return AssistantClient(client_settings)


async def run_panel(
    settings: Settings,
    *,
    client: AssistantClient,
    telemetry: TelemetryClient,
    reader: Any = None,
    writer: TextIO | None = None,
    drain_timeout: float = _DEFAULT_DRAIN_TIMEOUT,
) -> None:
    """Wire the controller to the bridge and serve until the input closes."""

    bus = EventBus()
    editor_state = EditorState()
    controller = ChatController(
        bus,
        client,
        context_extractor=SnapshotContextExtractor(editor_state, context_lines=settings.context_lines),
        content_controller=SnapshotContentController(editor_state),
        auth_provider=ApiKeyCredentialProvider(settings),
        telemetry=telemetry,
        retry_delay=max(0, settings.tab_binding_retry_ms) / 1000.0,
        max_file_text_chars=settings.max_file_text_chars,
    )
    bridge = StdioBridge(bus, editor_state, writer=writer)
    _LOGGER.info("codepanel ready (model=%s)", settings.model)
    try:
        await bridge.run(reader)
        if not await controller.wait_idle(timeout=drain_timeout):
            _LOGGER.warning("Shutting down with %d chat task(s) still pending", controller.pending_tasks)
    finally:
        await controller.aclose()
        bridge.close()
        telemetry.flush()
        await _shutdown_client(client)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `codepanel` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("CODEPANEL_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("CODEPANEL_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if args.save_settings:
        settings_store.save(settings)
        _LOGGER.info("Settings written to %s", settings_store.path)

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)
        debug = True

    client = build_client(settings, debug_logging=debug)
    telemetry = TelemetryClient.from_settings(settings)

    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(
            run_panel(settings, client=client, telemetry=telemetry, drain_timeout=args.drain_timeout)
        )
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        _drain_event_loop(loop)
        loop.close()


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _drain_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel outstanding tasks and shutdown async machinery before closing."""

    if loop.is_closed():
        return

    async def _cleanup() -> None:
        current_task = asyncio.current_task()
        tasks = [task for task in asyncio.all_tasks() if not task.done() and task is not current_task]
        if tasks:
            _LOGGER.debug("Canceling %s pending asyncio task(s) before shutdown.", len(tasks))
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for step in (loop.shutdown_asyncgens, loop.shutdown_default_executor):
            with contextlib.suppress(RuntimeError, NotImplementedError):
                await step()

    try:
        loop.run_until_complete(_cleanup())
    except RuntimeError as exc:  # pragma: no cover - defensive guard
        _LOGGER.debug("Unable to drain asyncio loop: %s", exc)


async def _shutdown_client(client: AssistantClient | None) -> None:
    """Close the assistant client to release network resources."""

    if client is None:
        return
    try:
        await client.aclose()
    except Exception as exc:  # pragma: no cover - defensive logging
        _LOGGER.debug("Assistant client shutdown failed: %s", exc)


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="codepanel",
        description="Serve the editor chat panel over JSON lines on stdin/stdout.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Persist the effective settings (including --set overrides) before starting.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.codepanel/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings before launch (repeatable).",
    )
    parser.add_argument(
        "--drain-timeout",
        metavar="SECONDS",
        type=float,
        default=_DEFAULT_DRAIN_TIMEOUT,
        help="Seconds to wait for in-flight requests after the input closes.",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is dict:
        try:
            payload = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
        if not isinstance(payload, dict):
            raise ValueError("Dict overrides must be valid JSON objects")
        return payload
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin is dict:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("CODEPANEL_"))


if __name__ == "__main__":  # pragma: no cover
    main()
