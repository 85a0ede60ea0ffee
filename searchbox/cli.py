#!/usr/bin/env python3
"""
searchbox CLI.

Every command has a primary name and standard aliases:

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    serve           start, up       Start the searchbox HTTP server
    chat            talk            Interactive chat against a server
    ping            status, health  Ping a running instance
    dashboard       usage           Print a usage snapshot (local ledger or server)
    models          list            Show the model catalog
    banner          tone            Print the searchbox banner

Inside `chat`:
    /web            web-search mode (sticky)
    /research       research mode (sticky)
    /chat           plain chat mode
    /think          toggle thinking (chat mode only)
    /model <id>     switch model
    /clear          clear the conversation
    exit            leave
"""

import argparse
import asyncio
import json

from searchbox import __version__

BANNER = r"""
    ╔══════════════════════════════════════════════╗
    ║                                              ║
    ║   ╔═╗╔═╗╔═╗╦═╗╔═╗╦ ╦  ╔╗ ╔═╗═╗ ╦             ║
    ║   ╚═╗║╣ ╠═╣╠╦╝║  ╠═╣  ╠╩╗║ ║╔╩╦╝             ║
    ║   ╚═╝╚═╝╩ ╩╩╚═╚═╝╩ ╩  ╚═╝╚═╝╩ ╚═             ║
    ║                                              ║
    ║   Ask. Search. Research.          v""" + __version__ + r"""     ║
    ║                                              ║
    ╚══════════════════════════════════════════════╝
"""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_serve(args):
    """Start the searchbox HTTP server."""
    import uvicorn
    from searchbox.config import get_config

    cfg = get_config()
    host = args.host or cfg["server"]["host"]
    port = args.port or cfg["server"]["port"]

    print(BANNER)
    print(f"  Serving on {host}:{port}")
    print(f"  Usage ledger: {cfg.get('usage', {}).get('backend', 'memory')}")
    print(f"  Default model: {cfg.get('models', {}).get('default_model', 'mistral')}")
    print()

    uvicorn.run(
        "searchbox.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


def _print_message(message):
    if message.is_user:
        return
    if message.search_results:
        print(f"\n  🔎 {len(message.search_results)} results for '{message.search_query}'")
        for r in message.search_results:
            print(f"     [{r.position}] {r.title} ({r.source})")
    print(f"\n  ◀ {message.content}\n")


async def _chat_loop(orch):
    from searchbox.catalog import MODEL_CONFIGS
    from searchbox.orchestrator import Mode

    commands = {"/web": Mode.WEB_SEARCH, "/research": Mode.RESEARCH, "/chat": Mode.CHAT}
    while True:
        try:
            text = (await asyncio.to_thread(input, f"  {orch.mode.value}> ")).strip()
        except EOFError:
            break
        if not text:
            continue
        if text.lower() in ("exit", "quit", "q"):
            break
        if text in commands:
            orch.set_mode(commands[text])
            print(f"  mode: {orch.mode.value}")
            continue
        if text == "/think":
            orch.set_thinking(not orch.thinking_enabled)
            print(f"  thinking: {'on' if orch.thinking_enabled else 'off'}")
            continue
        if text.startswith("/model"):
            parts = text.split(maxsplit=1)
            if len(parts) == 2 and orch.set_model(parts[1]):
                print(f"  model: {MODEL_CONFIGS[orch.model_id].name}")
            else:
                print(f"  ✗  Unknown model. Try: {', '.join(MODEL_CONFIGS)}")
            continue
        if text == "/clear":
            orch.clear()
            print("  [conversation cleared]")
            continue

        reply = await orch.submit(text)
        if reply is not None:
            _print_message(reply)


def cmd_chat(args):
    """Interactive chat session against a running server."""
    from searchbox.client import ApiClient
    from searchbox.config import get_config
    from searchbox.orchestrator import ChatOrchestrator, Mode
    from searchbox.storage.local import LocalConversationStore

    cfg = get_config()
    o_cfg = cfg.get("orchestrator", {})
    url = args.url or f"http://localhost:{cfg['server']['port']}"
    client = ApiClient(url, user_email=args.user)
    history = None if args.no_history else LocalConversationStore(
        o_cfg.get("history_path", "~/.searchbox/messages.json")
    )

    orch = None

    def on_event(name, payload):
        if name == "state" and payload["state"].value == "search_pending":
            print("  … searching the web")
        elif name == "thinking":
            print(f"  💭 {payload['text']}")
            orch.thinking_complete()

    orch = ChatOrchestrator(
        search=client.search,
        complete=client.complete,
        model_id=args.model or cfg.get("models", {}).get("default_model", "mistral"),
        mode=Mode(args.mode),
        thinking_enabled=args.think or o_cfg.get("thinking_enabled", False),
        search_display_delay=float(o_cfg.get("search_display_delay", 1.0)),
        on_event=on_event,
        history=history,
    )

    print(BANNER)
    print(f"  Connected to {url} as {args.user or 'anonymous'}. Type 'exit' to leave.\n")
    for message in orch.messages:
        prefix = "▶" if message.is_user else "◀"
        print(f"  {prefix} {message.content}")
    try:
        asyncio.run(_chat_loop(orch))
    except KeyboardInterrupt:
        pass
    print("  [session closed]")


def cmd_ping(args):
    """Ping a running searchbox instance."""
    import httpx

    url = args.url or "http://localhost:8000"
    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        if resp.status_code == 200:
            data = resp.json()
            print(f"  ✓  {url} is UP (v{data.get('version', '?')}, ledger: {data.get('usage_backend')})")
        else:
            print(f"  ✗  Got HTTP {resp.status_code}")
    except httpx.ConnectError:
        print(f"  ✗  Nothing at {url}")
    except Exception as e:
        print(f"  ✗  Error: {e}")


def _fetch_snapshot(args) -> dict:
    from searchbox.config import get_config

    cfg = get_config()
    if args.token:
        from searchbox.client import ApiClient

        url = args.url or f"http://localhost:{cfg.get('server', {}).get('port', 8000)}"
        return asyncio.run(ApiClient(url).dashboard(args.token, force_refresh=True))

    from searchbox.usage import ledger_from_config

    ledger = ledger_from_config(cfg)
    return asyncio.run(ledger.get_dashboard_snapshot(args.user, force_refresh=True))


def cmd_dashboard(args):
    """Print a usage snapshot: from a running server (--token) or the local ledger (--user)."""
    import httpx

    if not args.token and not args.user:
        print("  ✗  Pass --user for the local ledger or --token for a running server")
        return
    try:
        snapshot = _fetch_snapshot(args)
    except httpx.HTTPStatusError as e:
        print(f"  ✗  Dashboard request failed: HTTP {e.response.status_code}")
        return
    except httpx.HTTPError as e:
        print(f"  ✗  Dashboard request failed: {e}")
        return

    if args.json:
        print(json.dumps(snapshot, indent=2))
        return

    user, usage = snapshot["user"], snapshot["usage"]
    print(f"  User: {user['email']} ({user['plan']})")
    print(f"  ├─ Requests:     {usage['totalRequests']} ({usage['successRate']}% ok)")
    print(f"  ├─ Tokens:       {usage['inputTokens']:,} in / {usage['outputTokens']:,} out")
    print(f"  ├─ Images:       {usage['imagesGenerated']}")
    print(f"  └─ Est. cost:    ${usage['estimatedCost']}")
    print()
    print(f"  {'Model':<28} {'Reqs':>5}  {'Tokens':>9}  {'Cost':>7}  {'%':>4}")
    print("  " + "─" * 60)
    for row in snapshot["modelUsage"]:
        print(
            f"  {row['name'][:28]:<28} {row['requests']:>5}  "
            f"{row['totalTokens']:>9,}  ${row['cost']:>6}  {row['percentage']:>3}%"
        )


def cmd_models(args):
    """Show the model catalog."""
    from searchbox.catalog import DEFAULT_MODEL, MODEL_CONFIGS

    for model_id, mc in MODEL_CONFIGS.items():
        marker = "*" if model_id == DEFAULT_MODEL else " "
        print(f"  {marker} {model_id:<26} {mc.name:<32} {mc.backend}")


def cmd_banner(args):
    """Print the banner."""
    print(BANNER)


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="searchbox",
        description="searchbox: chat and web search with usage accounting.",
        epilog="Run 'searchbox <command> --help' for command-specific options.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"searchbox {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_serve(p):
        p.add_argument("--host", default=None, help="Override listen host")
        p.add_argument("--port", "-p", type=int, default=None, help="Override listen port")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")

    _add_command(sub, ["serve", "start", "up"],
                 "Start the searchbox HTTP server", cmd_serve, setup_serve)

    def setup_chat(p):
        p.add_argument("--url", "-u", default=None, help="Server URL (default: localhost on the configured port)")
        p.add_argument("--user", default=None, help="Email to attribute usage to (default: anonymous)")
        p.add_argument("--model", "-m", default=None, help="Model id (see 'searchbox models')")
        p.add_argument("--mode", choices=["chat", "web", "research"], default="chat", help="Starting mode")
        p.add_argument("--think", action="store_true", help="Enable the thinking phase")
        p.add_argument("--no-history", action="store_true", help="Don't load or save local history")

    _add_command(sub, ["chat", "talk"], "Interactive chat against a server", cmd_chat, setup_chat)

    def setup_ping(p):
        p.add_argument("--url", "-u", default=None, help="Server URL (default: http://localhost:8000)")

    _add_command(sub, ["ping", "status", "health"], "Ping a running instance", cmd_ping, setup_ping)

    def setup_dashboard(p):
        p.add_argument("--user", default=None, help="User id to report on from the local ledger")
        p.add_argument("--token", default=None, help="ID token: fetch the snapshot from a running server")
        p.add_argument("--url", "-u", default=None, help="Server URL for --token (default: localhost on the configured port)")
        p.add_argument("--json", action="store_true", help="Raw JSON output")

    _add_command(sub, ["dashboard", "usage"],
                 "Print a user's usage snapshot", cmd_dashboard, setup_dashboard)

    _add_command(sub, ["models", "list"], "Show the model catalog", cmd_models)
    _add_command(sub, ["banner", "tone"], "Print the searchbox banner", cmd_banner)
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()
    if not args.command:
        cmd_banner(args)
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
