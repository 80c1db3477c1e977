"""CLI main entry point."""

import asyncio
import json
import sys
from collections.abc import Callable
from typing import Any

import click
import yaml

from . import __version__
from .agent.executor import JobExecutor
from .agent.types import Job
from .formatters import print_results
from .shared.logging import configure_logging

LOG_LEVELS = ["debug", "info", "warning", "error", "critical"]


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("--log-level", type=click.Choice(LOG_LEVELS), help="Log level")
@click.pass_context
def cli(ctx: click.Context, verbose: int, json_output: bool, log_level: str | None) -> None:
    """AccessibilityAgent - host reachability checker."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["json_output"] = json_output
    ctx.obj["log_level"] = log_level


def _log_level(ctx: click.Context, default: str = "warning") -> str:
    if ctx.obj.get("log_level"):
        return ctx.obj["log_level"]
    verbose = ctx.obj.get("verbose", 0)
    if verbose >= 2:
        return "debug"
    if verbose == 1:
        return "info"
    return default


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def format_option(func: Callable) -> Callable:
    return click.option(
        "--format",
        "output_format",
        type=click.Choice(["text", "json"], case_sensitive=False),
        help="Output format",
    )(func)


def timeout_option(func: Callable) -> Callable:
    return click.option("-t", "--timeout", type=int, help="Timeout in milliseconds")(func)


def _run_job(
    ctx: click.Context,
    job_type: str,
    payload: dict[str, Any],
    output_format: str | None,
    include_summary: bool = False,
) -> None:
    """Run a job locally through the executor and print its checks."""
    configure_logging(_log_level(ctx))
    job = Job(id="cli", type=job_type, payload={k: v for k, v in payload.items() if v is not None})
    result = asyncio.run(JobExecutor().execute(job))

    if result.error:
        _fail(result.error)

    json_output = ctx.obj.get("json_output") or (output_format or "").lower() == "json"
    print_results(result.checks, json_output=json_output, include_summary=include_summary)
    sys.exit(0 if result.success else 1)


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"accessibilityagent version {__version__}")


@cli.command()
@click.argument("host")
@timeout_option
@format_option
@click.pass_context
def ping(ctx: click.Context, host: str, timeout: int | None, output_format: str | None) -> None:
    """Send an ICMP echo request to HOST."""
    _run_job(ctx, "ping", {"host": host, "timeoutMs": timeout}, output_format)


@cli.command()
@click.argument("host")
@timeout_option
@format_option
@click.pass_context
def dns(ctx: click.Context, host: str, timeout: int | None, output_format: str | None) -> None:
    """Resolve HOST."""
    _run_job(ctx, "dns", {"host": host, "timeoutMs": timeout}, output_format)


@cli.command()
@click.argument("host")
@click.argument("port", type=int)
@timeout_option
@format_option
@click.pass_context
def tcp(
    ctx: click.Context, host: str, port: int, timeout: int | None, output_format: str | None
) -> None:
    """Open a TCP connection to HOST:PORT."""
    _run_job(ctx, "tcp", {"host": host, "port": port, "timeoutMs": timeout}, output_format)


@cli.command()
@click.argument("host")
@click.argument("port", type=int)
@click.option("--payload", default="", help="Datagram payload")
@click.option("--expect-response", is_flag=True, help="Wait for a response datagram")
@timeout_option
@format_option
@click.pass_context
def udp(
    ctx: click.Context,
    host: str,
    port: int,
    payload: str,
    expect_response: bool,
    timeout: int | None,
    output_format: str | None,
) -> None:
    """Send a UDP datagram to HOST:PORT."""
    _run_job(
        ctx,
        "udp",
        {
            "host": host,
            "port": port,
            "payload": payload,
            "expectResponse": expect_response,
            "timeoutMs": timeout,
        },
        output_format,
    )


@cli.command()
@click.argument("url")
@click.option("-X", "--method", default="GET", help="HTTP method")
@click.option("-H", "--header", "headers", multiple=True, help="Header KEY=VALUE or KEY:VALUE")
@click.option("--body", help="Request body")
@click.option("--content-type", default="text/plain", help="Body content type")
@timeout_option
@format_option
@click.pass_context
def http(
    ctx: click.Context,
    url: str,
    method: str,
    headers: tuple[str, ...],
    body: str | None,
    content_type: str,
    timeout: int | None,
    output_format: str | None,
) -> None:
    """Send an HTTP request to URL."""
    _run_job(
        ctx,
        "http",
        {
            "url": url,
            "method": method,
            "headers": list(headers),
            "body": body,
            "contentType": content_type,
            "timeoutMs": timeout,
        },
        output_format,
    )


@cli.command()
@click.argument("host")
@click.option("--skip-ping", is_flag=True, help="Do not ping the host")
@click.option("--skip-dns", is_flag=True, help="Do not resolve the host")
@click.option("--dns-host", help="Name to resolve instead of HOST")
@click.option("--tcp-port", "tcp_ports", type=int, multiple=True, help="TCP port (repeatable)")
@click.option("--udp-port", "udp_ports", type=int, multiple=True, help="UDP port (repeatable)")
@click.option("--udp-payload", help="UDP datagram payload")
@click.option("--udp-expect-response", is_flag=True, help="Wait for UDP responses")
@click.option("--http", "http_flag", is_flag=True, help="Check http://HOST/")
@click.option("--https", "https_flag", is_flag=True, help="Use https for synthesized URLs")
@click.option("--http-url", "http_urls", multiple=True, help="Explicit URL (repeatable)")
@click.option("--http-port", "http_ports", type=int, multiple=True, help="HTTP port (repeatable)")
@click.option("--http-path", help="Path for synthesized URLs")
@click.option("--http-method", help="HTTP method")
@click.option("--http-header", "http_headers", multiple=True, help="Header KEY=VALUE")
@click.option("--http-body", help="HTTP request body")
@click.option("--http-content-type", help="HTTP body content type")
@click.option("--ping-timeout", type=int, help="Ping timeout (ms)")
@click.option("--dns-timeout", type=int, help="DNS timeout (ms)")
@click.option("--tcp-timeout", type=int, help="TCP timeout (ms)")
@click.option("--udp-timeout", type=int, help="UDP timeout (ms)")
@click.option("--http-timeout", type=int, help="HTTP timeout (ms)")
@timeout_option
@format_option
@click.pass_context
def check(ctx: click.Context, host: str, output_format: str | None, **options: Any) -> None:
    """Run a composite reachability check against HOST."""
    payload = {
        "host": host,
        "skipPing": options["skip_ping"],
        "skipDns": options["skip_dns"],
        "dnsHost": options["dns_host"],
        "tcpPorts": list(options["tcp_ports"]),
        "udpPorts": list(options["udp_ports"]),
        "udpPayload": options["udp_payload"],
        "udpExpectResponse": options["udp_expect_response"],
        "http": options["http_flag"],
        "https": options["https_flag"],
        "httpUrls": list(options["http_urls"]),
        "httpPorts": list(options["http_ports"]),
        "httpPath": options["http_path"],
        "httpMethod": options["http_method"],
        "httpHeaders": list(options["http_headers"]),
        "httpBody": options["http_body"],
        "httpContentType": options["http_content_type"],
        "timeoutMs": options["timeout"],
        "pingTimeoutMs": options["ping_timeout"],
        "dnsTimeoutMs": options["dns_timeout"],
        "tcpTimeoutMs": options["tcp_timeout"],
        "udpTimeoutMs": options["udp_timeout"],
        "httpTimeoutMs": options["http_timeout"],
    }
    _run_job(ctx, "check", payload, output_format, include_summary=True)


# -- agent mode -------------------------------------------------------------

AGENT_OPTIONS = [
    click.option("-s", "--server", help="Coordinator URL (or AA_SERVER_URL)"),
    click.option("-t", "--token", help="Authentication token (or AA_AGENT_TOKEN)"),
    click.option("-n", "--name", help="Agent name (default: saved name, then hostname)"),
    click.option("--reconnect-delay", type=int, help="Initial reconnect delay in ms (default 2000)"),
    click.option("--reconnect-delay-max", type=int, help="Maximum reconnect delay in ms (default 30000)"),
    click.option("--reconnect-attempts", type=int, help="Limit reconnect attempts"),
    click.option("--heartbeat", type=int, help="Heartbeat interval in ms (default 30000, 0 disables)"),
    click.option("--metadata", "metadata", multiple=True, help="Metadata KEY=VALUE (repeatable)"),
    click.option("--credentials", type=click.Path(dir_okay=False), help="Credentials file path"),
    click.option("--no-auto-issue", is_flag=True, help="Do not request a personal token"),
]


def agent_options(func: Callable) -> Callable:
    for option in reversed(AGENT_OPTIONS):
        func = option(func)
    return func


def _load_agent_config(params: dict[str, Any]) -> Any:
    from .config import load_agent_config

    try:
        return load_agent_config(
            server_url=params["server"],
            token=params["token"],
            agent_name=params["name"],
            reconnect_delay_ms=params["reconnect_delay"],
            reconnect_delay_max_ms=params["reconnect_delay_max"],
            reconnect_attempts=params["reconnect_attempts"],
            heartbeat_ms=params["heartbeat"],
            metadata=params["metadata"],
            credential_file=params["credentials"],
            auto_issue_personal_token=not params["no_auto_issue"],
        )
    except ValueError as e:
        _fail(str(e))


def _resolve_options(params: dict[str, Any]) -> Any:
    config = _load_agent_config(params)
    try:
        return config.to_options()
    except ValueError as e:
        _fail(str(e))


@cli.group()
def agent() -> None:
    """Run as an agent connected to a coordinator."""
    pass


@agent.command("run")
@agent_options
@click.pass_context
def agent_run(ctx: click.Context, **params: Any) -> None:
    """Run the agent in the foreground."""
    from .agent.command import run_agent

    options = _resolve_options(params)
    configure_logging(_log_level(ctx, default="info"))
    sys.exit(run_agent(options))


@agent.command("start")
@agent_options
@click.pass_context
def agent_start(ctx: click.Context, **params: Any) -> None:
    """Start the agent as a background daemon."""
    from .agent.command import run_agent
    from .agent.daemon import start_daemon

    options = _resolve_options(params)
    sys.exit(start_daemon(run_agent, log_level=_log_level(ctx, default="info"), options=options))


@agent.command("stop")
def agent_stop() -> None:
    """Stop the background agent."""
    from .agent.daemon import stop_daemon

    stop_daemon()


@agent.command("status")
@click.pass_context
def agent_status(ctx: click.Context) -> None:
    """Show whether the background agent is running."""
    from .agent.daemon import LOG_FILE, is_running

    alive, pid = is_running()
    if ctx.obj.get("json_output"):
        click.echo(json.dumps({"running": alive, "pid": pid, "log_file": str(LOG_FILE)}, indent=2))
        return

    if alive:
        click.echo(f"Agent running (PID {pid})")
        click.echo(f"Logs: {LOG_FILE}")
    else:
        click.echo("Agent is not running.")


@agent.command("config")
@agent_options
@click.pass_context
def agent_config(ctx: click.Context, **params: Any) -> None:
    """Show the resolved agent configuration and where each value comes from."""
    config = _load_agent_config(params)
    data = config.to_display_dict()

    if ctx.obj.get("json_output"):
        sources = {key: config.get_source(key) for key in data}
        click.echo(json.dumps({"config": data, "sources": sources}, indent=2, default=str))
        return

    click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False), nl=False)
    click.echo("\nSources:")
    for key in data:
        click.echo(f"  {key}: {config.get_source(key)}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
