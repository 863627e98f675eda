#!filepath: signal_gate/cli.py
from typing import Optional

import typer
from rich import print
from rich.markup import escape

from signal_gate import __version__
from signal_gate.utils.logger import logs

app = typer.Typer(help="signal_gate split validation CLI")


def _split(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [s.strip() for s in value.split(",") if s.strip()]


@app.command()
def version():
    print(f"v{__version__}")


@app.command()
def validate(
        train: str = typer.Option(..., help="comma separated train window dirs"),
        validate: Optional[str] = typer.Option(None, help="comma separated validate window dirs"),
        forward: Optional[str] = typer.Option(None, help="comma separated forward window dirs"),
        config: Optional[str] = typer.Option(None, help="YAML config path"),
        workers: Optional[int] = typer.Option(None, min=1, help="labeling worker processes"),
):
    """
    train → (validate) → (forward) split validation
    """
    from signal_gate.config.app_config import AppConfig
    from signal_gate.workflows.split_validation import run_split_validation

    cfg = AppConfig.load(config)
    logs.configure(cfg.log)
    if workers is not None:
        cfg.dispatch.max_workers = workers

    train_inputs = _split(train)
    if not train_inputs:
        print("[red]--train needs at least one input window[/red]")
        raise typer.Exit(code=1)

    verdict = run_split_validation(
        train_inputs,
        _split(validate),
        _split(forward),
        cfg=cfg,
    )

    if verdict.ok:
        print(f"[green]SUCCESS: {len(verdict.adopted)} candidate(s) adopted[/green]")
        for c in verdict.adopted:
            print(f"  {c.type} ({c.side}) avgNet={c.avg_net_real:.4f} count={c.count}")
    else:
        print(f"[red]FAILED: {escape(str(verdict.failure))}[/red]")
    print(f"[blue]run {verdict.run_id} complete[/blue]")

    raise typer.Exit(code=verdict.exit_code)


@app.command("shadow-summary")
def shadow_summary(
        input: str = typer.Option(..., help="shadow-live JSONL log"),
        out: Optional[str] = typer.Option(None, help="write summary JSON here"),
):
    """
    shadow-live JSONL → summary JSON
    """
    import json

    from signal_gate.engines.shadow_summary_engine import ShadowSummaryEngine
    from signal_gate.utils.errors import InputError
    from signal_gate.utils.filesystem import FileSystem

    try:
        summary = ShadowSummaryEngine().execute(input)
    except InputError as e:
        print(f"[red]ERR: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if out:
        FileSystem.write_json(out, summary)
    typer.echo(json.dumps(summary, indent=2, default=str))


if __name__ == "__main__":
    app()

# python -m signal_gate.cli validate --train data/w1,data/w2 --forward data/w3
