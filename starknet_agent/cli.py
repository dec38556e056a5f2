import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.prompt import Prompt
from rich.spinner import Spinner
from rich.table import Table
from typing_extensions import Annotated

from starknet_agent.client.starknet_agent import StarknetAgent
from starknet_agent.domains.jobs import ResultStatus

logging.basicConfig(level=logging.WARNING, format="%(levelname)s:%(name)s:%(message)s")

app = typer.Typer(help="Run and manage a Starknet agent.")
console = Console()

POLL_INTERVAL_SECONDS = 1.0
EXIT_WORDS = ("exit", "quit")

ConfigOption = Annotated[str, typer.Option(help="Path to the agent configuration file.")]
UserOption = Annotated[str, typer.Option(help="User the conversation or upload belongs to.")]


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]{message}[/bold red]")
    raise typer.Exit(code=1)


def load_agent(config: str) -> StarknetAgent:
    try:
        with console.status("[bold green]Initializing agent...", spinner="dots"):
            return StarknetAgent(config_path=config)
    except FileNotFoundError:
        _fail(f"Configuration file not found at '{config}'")
    except ValueError as e:
        _fail(f"Invalid configuration: {e}")
    except Exception as e:
        _fail(f"Agent initialization failed: {e}")


async def _chat_turn(
    agent: StarknetAgent, user_id: str, message: str, prompt: Optional[str]
) -> str:
    """Stream one reply into a transient live view and return the full text."""
    reply = ""
    with Live(Spinner("dots", "Thinking..."), console=console, transient=True) as live:
        async for chunk in agent.process(user_id=user_id, message=message, prompt=prompt):
            reply += chunk
            live.update(reply)
    return reply


@app.command()
def chat(
    user_id: UserOption = "cli_user",
    config: ConfigOption = "config.json",
    prompt: Annotated[
        Optional[str], typer.Option(help="Extra instructions added to every turn.")
    ] = None,
):
    """Chat with the agent until 'exit' or 'quit'."""
    agent = load_agent(config)
    console.print("[green]Agent ready.[/green] [dim]Type 'exit' or 'quit' to leave.[/dim]")

    while True:
        try:
            message = Prompt.ask("[bold green]You[/bold green]").strip()
        except (KeyboardInterrupt, EOFError):
            console.print()
            break
        if message.lower() in EXIT_WORDS:
            break
        if not message:
            continue

        try:
            reply = asyncio.run(_chat_turn(agent, user_id, message, prompt))
        except KeyboardInterrupt:
            console.print("[yellow]Turn cancelled.[/yellow]")
            continue
        except Exception as e:
            console.print(f"[bold red]Error during processing:[/bold red] {e}")
            continue
        if reply:
            console.print(f"[bright_blue]Agent:[/bright_blue] {reply}")
        else:
            console.print("[yellow]Agent did not produce a response.[/yellow]")

    console.print("[yellow]Exiting chat session.[/yellow]")
    console.print(f"[dim]Tokens used: {agent.get_token_usage()['total_tokens']}[/dim]")
    asyncio.run(agent.close())


@app.command()
def run(
    config: ConfigOption = "config.json",
    cycles: Annotated[
        Optional[int], typer.Option(help="Number of cycles; runs until interrupted if omitted.")
    ] = None,
):
    """Run the agent autonomously toward its objectives."""
    agent = load_agent(config)
    console.print("[green]Running agent autonomously. Press Ctrl+C to stop.[/green]")
    try:
        responses = asyncio.run(agent.run_autonomous(max_cycles=cycles))
    except KeyboardInterrupt:
        agent.stop()
        console.print("\n[yellow]Autonomous run interrupted.[/yellow]")
        raise typer.Exit()
    except ValueError as e:
        _fail(f"Error: {e}")

    for index, response in enumerate(responses, start=1):
        console.print(f"[bright_blue]Cycle {index}:[/bright_blue] {response}")


async def _ingest(
    agent: StarknetAgent, user_id: str, path: Path, mime_type: Optional[str], wait: bool
):
    try:
        job_id = await agent.ingest_file(
            user_id=user_id,
            file_name=path.name,
            content=path.read_bytes(),
            mime_type=mime_type,
        )
        console.print(f"[green]Queued ingestion job[/green] {job_id}")
        if not wait:
            # Workers live in this process; closing early would drop the job
            with console.status("[bold green]Finishing queued work...", spinner="dots"):
                await agent.wait_for_jobs()
            return

        with console.status("[bold green]Ingesting...", spinner="dots"):
            while True:
                result = await agent.get_job_result(job_id, user_id)
                if result.status != ResultStatus.PROCESSING:
                    break
                await asyncio.sleep(POLL_INTERVAL_SECONDS)

        if result.status == ResultStatus.COMPLETED:
            data = result.data or {}
            console.print(
                f"[green]Ingested[/green] {data.get('original_name')}: "
                f"{data.get('chunks_count')} chunks"
            )
        else:
            console.print(f"[bold red]Ingestion {result.status.value}:[/bold red] {result.error}")
    finally:
        await agent.close()


@app.command()
def ingest(
    path: Annotated[Path, typer.Argument(help="File to ingest.", exists=True, dir_okay=False)],
    user_id: UserOption = "cli_user",
    config: ConfigOption = "config.json",
    mime_type: Annotated[
        Optional[str], typer.Option(help="Declared MIME type; guessed when omitted.")
    ] = None,
    wait: Annotated[
        bool,
        typer.Option(
            help="Report the job result. With --no-wait only the job id is printed; "
            "the queued work still finishes before the command exits."
        ),
    ] = True,
):
    """Ingest a file into the agent's document store."""
    agent = load_agent(config)
    mime_type = mime_type or mimetypes.guess_type(path.name)[0]
    try:
        asyncio.run(_ingest(agent, user_id, path, mime_type, wait))
    except Exception as e:
        _fail(f"Ingestion failed: {e}")


async def _job(agent: StarknetAgent, job_id: str, user_id: str):
    await agent.start_workers()
    try:
        return await agent.get_job_result(job_id, user_id)
    finally:
        await agent.close()


@app.command()
def job(
    job_id: Annotated[str, typer.Argument(help="Ingestion job id.")],
    user_id: UserOption = "cli_user",
    config: ConfigOption = "config.json",
):
    """Show the status of an ingestion job."""
    agent = load_agent(config)
    try:
        result = asyncio.run(_job(agent, job_id, user_id))
    except Exception as e:
        _fail(f"Error: {e}")

    table = Table(title=f"Job {job_id}")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("status", result.status.value)
    table.add_row("source", result.source.value)
    if result.error:
        table.add_row("error", result.error)
    for key, value in (result.data or {}).items():
        table.add_row(key, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
