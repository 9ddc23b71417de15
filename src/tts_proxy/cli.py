"""
Command-Line Interface for tts-proxy.

Synthesizes through the same cache as the HTTP service without running it,
or starts the service itself.

Usage Examples:
    # Single text (prints the cached file path)
    tts-proxy 你好

    # Same, with a voice override and a copy of the MP3
    tts-proxy --text 你好 --model cmn-CN-Chirp3-HD-Charon --out hello.mp3

    # Force a fresh synthesis, overwriting the cached file
    tts-proxy 你好 --reset

    # Batch processing from file (one text per line)
    tts-proxy --file inputs.txt --json

    # Dry-run mode (no network calls, shows cache keys and hit status)
    tts-proxy --text 你好 --dry-run --json

    # Run the HTTP service
    tts-proxy --serve --port 8080

Environment Variables:
    GOOGLE_API_KEY: Provider credential (not needed for --dry-run)
    OUTPUT_DIR: Cache directory (default ./audio)
    HOST / PORT: Bind address for --serve
"""

from __future__ import annotations

import argparse
import json
import os
import shutil
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from tts_proxy.api.dependencies import get_settings
from tts_proxy.core.config import ConfigValidationError, load_settings
from tts_proxy.core.logging import configure_logging, get_logger, info, set_request_id
from tts_proxy.services.tts_service import SynthesizeRequest, TTSError, TTSService
from tts_proxy.tts.storage import StorageError


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tts-proxy", description="tts-proxy CLI (cached synth)")

    # Input options (mutually exclusive: text vs file)
    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")
    parser.add_argument("--file", help="Batch input file (1 line = 1 item)")

    # Synthesis options
    parser.add_argument("--model", help="Voice name override")
    parser.add_argument("--reset", action="store_true",
                        help="Bypass the cache and overwrite the cached file")
    parser.add_argument("--out", help="Also copy the MP3 here (file, or dir in batch mode)")
    parser.add_argument("--settings", help="YAML settings path")

    # Execution modes
    parser.add_argument("--dry-run", action="store_true",
                        help="Show cache keys and hit status without synthesis")
    parser.add_argument("--json", action="store_true",
                        help="Print JSON summary")

    # Server mode
    parser.add_argument("--serve", action="store_true", help="Run the HTTP service")
    parser.add_argument("--host", help="Bind host for --serve")
    parser.add_argument("--port", type=int, help="Bind port for --serve")

    return parser.parse_args(argv)


def _load_texts(args: argparse.Namespace) -> List[str]:
    """
    Load input texts from arguments or file.

    Raises:
        SystemExit: If no input provided or conflicting options used.
    """
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        lines = Path(args.file).read_text(encoding="utf-8").splitlines()
        items = [line.strip() for line in lines if line.strip()]
        if not items:
            raise SystemExit("Input file is empty.")
        return items

    if not text:
        raise SystemExit("Provide --text or a positional text.")
    return [text]


def _copy_target(args: argparse.Namespace, key: str) -> Optional[Path]:
    """Where to copy a result for --out, or None when not requested."""
    if not args.out:
        return None
    if args.file:
        out_dir = Path(args.out)
        out_dir.mkdir(parents=True, exist_ok=True)
        return out_dir / key
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    return out_path


def _serve(args: argparse.Namespace) -> int:
    """
    Run the HTTP service with uvicorn.

    The served app builds its service from its own load_settings() call,
    so --settings is handed over through TTS_PROXY_SETTINGS. The config is
    validated here first so a bad file or missing key exits with code 1.
    """
    import uvicorn

    try:
        config = load_settings(args.settings).get_proxy_config()
    except (ConfigValidationError, FileNotFoundError) as e:
        print(f"Configuration error: {e}")
        return 1

    if args.settings:
        os.environ["TTS_PROXY_SETTINGS"] = str(Path(args.settings).resolve())
        get_settings.cache_clear()
        configure_logging(force=True)

    uvicorn.run(
        "tts_proxy.main:app",
        host=args.host or config.server.host,
        port=args.port or config.server.port,
        log_config=None,
    )
    return 0


def _print(payload: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        for item in payload["items"]:
            print(item.get("file") or item.get("error"))


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for configuration errors, 2 when any
        item failed).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("tts-proxy.cli")

    if args.serve:
        return _serve(args)

    set_request_id(str(uuid4())[:12])
    texts = _load_texts(args)

    try:
        settings = load_settings(args.settings)
        config = settings.get_proxy_config(require_api_key=not args.dry_run)
        service = TTSService(config)
    except (ConfigValidationError, FileNotFoundError, StorageError) as e:
        print(f"Configuration error: {e}")
        return 1

    try:
        # Dry run: resolve keys only, no provider calls
        if args.dry_run:
            items = []
            for text in texts:
                try:
                    resolved = service.resolve(text, args.model)
                except TTSError as e:
                    items.append({"text": text, "ok": False, "error": e.code, "message": e.message})
                    continue
                items.append({
                    "text": resolved.text,
                    "ok": True,
                    "model": resolved.model,
                    "key": resolved.key,
                    "file": str(resolved.path),
                    "cached": service.is_cached(resolved),
                })
            info(log, "dry_run", items=len(items))
            _print({"ok": all(i["ok"] for i in items), "dry_run": True, "items": items}, args.json)
            print("DRY_RUN_OK")
            return 0

        items = []
        for text in texts:
            rid = str(uuid4())[:12]
            set_request_id(rid)
            try:
                result = service.synthesize(
                    SynthesizeRequest(text=text, model=args.model, reset=args.reset), rid
                )
            except TTSError as e:
                items.append({"text": text, "ok": False, "error": e.code, "message": e.message})
                continue

            item = {
                "text": text,
                "ok": True,
                "key": result.key,
                "file": str(result.path),
                "cache": result.cache_status,
                "bytes": len(result.audio_bytes),
            }
            target = _copy_target(args, result.key)
            if target is not None:
                shutil.copyfile(result.path, target)
                item["out"] = str(target)
            items.append(item)
    finally:
        service.close()

    ok = all(i["ok"] for i in items)
    _print({"ok": ok, "dry_run": False, "items": items}, args.json)
    return 0 if ok else 2


if __name__ == "__main__":
    raise SystemExit(main())
