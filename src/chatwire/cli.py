from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional
import typer

from .bootstrap import build_client, register_config_providers
from .config_loader import load_config, ConfigError
from .core.errors import BackendError, ProviderClientError, TransportFailure
from .core.ports import CompletionRequest, Message
from .logsetup import configure_logging
from .providers.registry import ProviderRegistry

app = typer.Typer(add_completion=False, no_args_is_help=True)

EXIT_UNREACHABLE = 1
EXIT_FAILED = 2


@app.callback()
def main(
    ctx: typer.Context,
    config: Path = typer.Option(Path("config/default.yaml"), "--config", "-c", help="YAML config file"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Override client.provider"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override client.model"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ..."),
):
    """Talk to Ollama, KoboldCpp, Groq, OpenAI or any configured backend through one interface."""
    configure_logging(log_level)
    ctx.obj = {"config": config, "provider": provider, "model": model}


def _build(ctx: typer.Context) -> Dict[str, Any]:
    opts = ctx.obj
    try:
        return build_client(opts["config"], provider=opts["provider"], model=opts["model"])
    except (ConfigError, FileNotFoundError, ProviderClientError) as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(EXIT_FAILED)


@app.command()
def providers(ctx: typer.Context):
    """List registered provider names."""
    config: Path = ctx.obj["config"]
    if config.exists():
        try:
            register_config_providers(load_config(config))
        except ConfigError as e:
            typer.echo(f"error: {e}", err=True)
            raise typer.Exit(EXIT_FAILED)
    else:
        ProviderRegistry.ensure_builtins()
    for name in ProviderRegistry.names():
        typer.echo(name)


@app.command()
def probe(ctx: typer.Context, timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds")):
    """Exit 0 if the backend answers its model-list endpoint, 1 otherwise."""
    built = _build(ctx)
    client = built["client"]
    with client:
        ok = client.probe(timeout if timeout is not None else built["probe_timeout"])
    typer.echo(f"{client.provider_name}: {'reachable' if ok else 'unreachable'}")
    if not ok:
        raise typer.Exit(EXIT_UNREACHABLE)


@app.command()
def models(ctx: typer.Context):
    """Print the models the backend offers."""
    built = _build(ctx)
    with built["client"] as client:
        try:
            infos = client.list_models()
        except (BackendError, TransportFailure) as e:
            typer.echo(f"error: {e}", err=True)
            raise typer.Exit(EXIT_FAILED)
    for m in infos:
        typer.echo(f"{m.name}  ({m.family})" if m.family else m.name)


@app.command()
def chat(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="User message"),
    system: Optional[str] = typer.Option(None, "--system", "-s", help="System prompt"),
    stream: Optional[bool] = typer.Option(None, "--stream/--no-stream", help="Override client.stream"),
):
    """Send one user turn and print the reply."""
    built = _build(ctx)
    messages: List[Message] = []
    if system:
        messages.append(Message(role="system", content=system))
    messages.append(Message(role="user", content=prompt))
    use_stream = built["stream"] if stream is None else stream
    request = CompletionRequest(
        model=built["model"],
        messages=tuple(messages),
        streaming=use_stream,
        parameters=built["parameters"],
    )

    with built["client"] as client:
        try:
            if not use_stream:
                typer.echo(client.chat(request).content)
                return
            with client.chat(request) as chunks:
                try:
                    for chunk in chunks:
                        typer.echo(chunk.content, nl=False)
                except KeyboardInterrupt:
                    # leaving the with-block closes the stream and its connection
                    typer.echo("\n[stream interrupted]")
                    raise typer.Exit(130)
            typer.echo("")
        except (BackendError, TransportFailure) as e:
            typer.echo(f"error: {e}", err=True)
            raise typer.Exit(EXIT_FAILED)
