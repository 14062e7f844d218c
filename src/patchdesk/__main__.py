"""CLI entry point for Patchdesk."""

from __future__ import annotations

import argparse
import asyncio
import errno
import sys
from pathlib import Path

import uvicorn

from . import __version__
from .config import AppConfig, _get_config_path, load_config


def _print_setup_guide(config_path: Path) -> None:
    print(
        f"\nTo get started, create {config_path} with:\n\n"
        "ai:\n"
        '  api_key: "your-openrouter-key"\n'
        '  model: "anthropic/claude-sonnet-4.5"\n'
        "auth:\n"
        '  base_url: "http://localhost:3000"\n'
        "\nOr set environment variables:\n"
        "  OPENROUTER_API_KEY=your-openrouter-key\n"
        "  PATCHDESK_AUTH_URL=http://localhost:3000\n",
        file=sys.stderr,
    )


def _load_config_or_exit() -> tuple[Path, AppConfig]:
    config_path = _get_config_path()
    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        _print_setup_guide(config_path)
        sys.exit(1)
    return config_path, config


async def _test_connection(config: AppConfig) -> None:
    from .services.ai_service import AIService

    ai_service = AIService(config.ai)

    print("Config:")
    print(f"  Endpoint: {config.ai.base_url}")
    print(f"  Model:    {config.ai.model}")
    print(f"  SSL:      {'enabled' if config.ai.verify_ssl else 'disabled'}")

    try:
        print("\n1. Listing models...")
        valid, message, models = await ai_service.validate_connection()
        if not valid:
            print(f"   FAILED - {message}")
            sys.exit(1)
        print(f"   OK - {len(models)} model(s) available")

        print(f"\n2. Sending test prompt to {config.ai.model}...")
        try:
            response = await ai_service.client.chat.completions.create(
                model=config.ai.model,
                messages=[{"role": "user", "content": "Say hello in one sentence."}],
                max_tokens=50,
            )
        except Exception as e:
            print(f"   FAILED - {e}")
            sys.exit(1)
        reply = response.choices[0].message.content or "(empty response)"
        print(f"   OK - Response: {reply.strip()}")
    finally:
        await ai_service.aclose()

    print("\nAll checks passed.")


def _run_web(config: AppConfig, config_path: Path) -> None:
    if config_path.exists():
        print(f"Config loaded from {config_path}")
    print(f"  AI endpoint: {config.ai.base_url}")
    print(f"  Model: {config.ai.model}")
    print(f"  Auth provider: {config.auth.base_url}")

    from .app import create_app

    app = create_app(config)

    url = f"http://{config.app.host}:{config.app.port}"
    print(f"\nStarting Patchdesk at {url}")

    if config.app.host in ("0.0.0.0", "::"):
        print("  WARNING: Binding to all interfaces. The app is accessible from the network.", file=sys.stderr)

    try:
        uvicorn.run(app, host=config.app.host, port=config.app.port, log_level="info")
    except OSError as e:
        if e.errno != errno.EADDRINUSE:
            raise
        print(
            f"\nError: port {config.app.port} is already in use.\n"
            "Set app.port in config.yaml to use a different port.",
            file=sys.stderr,
        )
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(prog="patchdesk", description="Patchdesk - AI coding assistant backend")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--test", action="store_true", help="Test connection settings and exit")

    args = parser.parse_args()

    config_path, config = _load_config_or_exit()

    if args.test:
        asyncio.run(_test_connection(config))
        return

    _run_web(config, config_path)


if __name__ == "__main__":
    main()
