"""Terminal console for the Argument Ledger."""

import asyncio
import logging
from uuid import UUID
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.panel import Panel

from argument_ledger import db
from argument_ledger.app import Ledger, open_ledger, close_ledger
from argument_ledger.config import LEDGER_STORE, LOG_LEVEL
from argument_ledger.errors import LedgerError, ValidationFailure
from argument_ledger.models import Argument, Fact
from argument_ledger.store import PostgresStore

console = Console()


def confidence_bar(value: float, width: int = 20) -> str:
    filled = int(value * width)
    if value < 0.3:
        color = "red"
    elif value < 0.6:
        color = "yellow"
    else:
        color = "green"
    bar = "█" * filled + "░" * (width - filled)
    return f"[{color}]{bar}[/{color}] {value:.2f}"


def parse_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        raise ValidationFailure(f"Not a valid id: {raw}")


def arguments_table(title: str, arguments: list[Argument]) -> Table:
    table = Table(title=title, show_lines=True)
    table.add_column("Id", style="dim", max_width=36)
    table.add_column("Argument", style="white", max_width=50)
    table.add_column("Confidence", width=28)
    table.add_column("Effective", width=28)
    table.add_column("+/-", style="dim")
    table.add_column("Cluster", style="dim", max_width=12)
    for a in arguments:
        cluster = ""
        if a.cluster_id:
            cluster = str(a.cluster_id)[:8] + (" ★" if a.is_cluster_head else "")
        table.add_row(
            str(a.id),
            a.content,
            confidence_bar(a.confidence),
            confidence_bar(a.effective_confidence),
            f"{a.support_count}/{a.refute_count}",
            cluster,
        )
    return table


def facts_table(title: str, facts: list[Fact]) -> Table:
    table = Table(title=title, show_lines=True)
    table.add_column("Id", style="dim", max_width=36)
    table.add_column("Claim", style="white", max_width=50)
    table.add_column("Confidence", width=28)
    table.add_column("Cited", style="dim")
    table.add_column("Challenged", style="dim")
    for f in facts:
        table.add_row(
            str(f.id), f.claim, confidence_bar(f.confidence),
            str(f.citation_count), str(f.challenge_count),
        )
    return table


async def show_argument(ledger: Ledger, argument_id: UUID):
    detail = await ledger.arguments.get_argument(argument_id)
    a = detail.argument
    lines = [
        f"[bold]{a.content}[/bold]",
        f"[dim]{a.summary}[/dim]" if a.summary else "",
        f"Confidence: {confidence_bar(a.confidence, 30)}",
        f"Effective:  {confidence_bar(a.effective_confidence, 30)}",
        f"[dim]support={a.support_count} refute={a.refute_count} cluster={a.cluster_id or '-'}"
        f"{' (head)' if a.is_cluster_head else ''}[/dim]",
    ]
    console.print(Panel("\n".join(l for l in lines if l), title=f"Argument {a.id}"))

    if detail.fact_dependencies:
        table = Table(title="Depends on")
        table.add_column("Fact", max_width=50)
        table.add_column("Weight")
        table.add_column("Fact confidence", width=28)
        for dep in detail.fact_dependencies:
            table.add_row(dep.claim, f"{dep.dependency_strength:.2f}", confidence_bar(dep.fact_confidence))
        console.print(table)

    for line in await ledger.audit.explain(argument_id=argument_id):
        console.print(f"[dim]  {line}[/dim]")


async def show_fact(ledger: Ledger, fact_id: UUID):
    detail = await ledger.facts.get_fact(fact_id)
    f = detail.fact
    console.print(Panel(
        f"[bold]{f.claim}[/bold]\n"
        f"Confidence: {confidence_bar(f.confidence, 30)}\n"
        f"[dim]citations={f.citation_count} challenges={f.challenge_count}[/dim]",
        title=f"Fact {f.id}",
    ))
    if detail.dependent_arguments:
        table = Table(title="Arguments depending on this fact")
        table.add_column("Argument", max_width=50)
        table.add_column("Weight")
        table.add_column("Effective", width=28)
        for d in detail.dependent_arguments:
            table.add_row(d.content, f"{d.dependency_strength:.2f}", confidence_bar(d.effective_confidence))
        console.print(table)

    for line in await ledger.audit.explain(fact_id=fact_id):
        console.print(f"[dim]  {line}[/dim]")


async def show_help():
    console.print(Panel(
        "[bold]Commands:[/bold]\n"
        "  [cyan]\\argue <text>[/cyan]              — Record a new argument\n"
        "  [cyan]\\assert <text>[/cyan]             — Record a new fact\n"
        "  [cyan]\\arg <id>[/cyan]                  — Show an argument with its audit trail\n"
        "  [cyan]\\fact <id>[/cyan]                 — Show a fact and its dependent arguments\n"
        "  [cyan]\\support <id>[/cyan] / [cyan]\\refute <id>[/cyan] — React to an argument\n"
        "  [cyan]\\set <id> <value> <reason>[/cyan] — Set an argument's confidence\n"
        "  [cyan]\\link <arg> <fact> [weight][/cyan] — Make an argument depend on a fact\n"
        "  [cyan]\\challenge <id> <reason>[/cyan]   — Challenge a fact\n"
        "  [cyan]\\cite <id> [post][/cyan]          — Cite a fact\n"
        "  [cyan]\\top[/cyan]                       — Highest-confidence arguments\n"
        "  [cyan]\\cluster <id>[/cyan]              — Arguments in a cluster\n"
        "  [cyan]\\post <post id>[/cyan]            — Arguments extracted from a post\n"
        "  [cyan]\\low[/cyan] / [cyan]\\established[/cyan]     — Weakest / strongest facts\n"
        "  [cyan]\\search <text>[/cyan]             — Search facts by text\n"
        "  [cyan]\\similar <text>[/cyan]            — Semantically similar arguments and facts\n"
        "  [cyan]\\init[/cyan]                      — Create database tables\n"
        "  [cyan]\\help[/cyan]                      — Show this help\n"
        "  [cyan]\\quit[/cyan]                      — Exit",
        title="Argument Ledger",
    ))


async def handle_command(ledger: Ledger, user_input: str) -> bool:
    """Run one console command. Returns False when the console should exit."""
    cmd, _, rest = user_input.partition(" ")
    cmd = cmd.lower()
    rest = rest.strip()
    args = rest.split()

    if cmd in ("\\quit", "\\exit", "\\q"):
        return False
    elif cmd == "\\help":
        await show_help()
    elif cmd == "\\argue":
        argument = await ledger.arguments.create_argument(rest)
        console.print(f"[green]✓ Argument {argument.id}[/green]")
        if argument.cluster_id:
            console.print(f"[dim]  clustered in {argument.cluster_id}[/dim]")
    elif cmd == "\\assert":
        fact = await ledger.facts.create_fact(rest)
        console.print(f"[green]✓ Fact {fact.id}[/green]")
    elif cmd == "\\arg":
        await show_argument(ledger, parse_id(rest))
    elif cmd == "\\fact":
        await show_fact(ledger, parse_id(rest))
    elif cmd in ("\\support", "\\refute"):
        action = ledger.arguments.support_argument if cmd == "\\support" else ledger.arguments.refute_argument
        result = await action(parse_id(rest), "console")
        console.print(
            f"{result.old_confidence:.3f} → [bold]{result.new_confidence:.3f}[/bold] "
            f"[dim](propagated to {len(result.propagated_to)})[/dim]"
        )
    elif cmd == "\\set":
        if len(args) < 3:
            raise ValidationFailure("Usage: \\set <id> <value> <reason>")
        try:
            value = float(args[1])
        except ValueError:
            raise ValidationFailure(f"Not a number: {args[1]}")
        result = await ledger.arguments.update_confidence(parse_id(args[0]), value, " ".join(args[2:]))
        console.print(
            f"{result.old_confidence:.3f} → [bold]{result.new_confidence:.3f}[/bold] "
            f"[dim](propagated to {len(result.propagated_to)})[/dim]"
        )
    elif cmd == "\\link":
        if len(args) < 2:
            raise ValidationFailure("Usage: \\link <argument> <fact> [weight]")
        try:
            weight = float(args[2]) if len(args) > 2 else 1.0
        except ValueError:
            raise ValidationFailure(f"Not a number: {args[2]}")
        await ledger.arguments.link_to_fact(parse_id(args[0]), parse_id(args[1]), weight)
        await show_argument(ledger, parse_id(args[0]))
    elif cmd in ("\\challenge", "\\cite"):
        if not args:
            raise ValidationFailure(f"Usage: {cmd} <id> ...")
        fact_id = parse_id(args[0])
        if cmd == "\\challenge":
            result = await ledger.facts.challenge_fact(fact_id, " ".join(args[1:]) or "unspecified")
        else:
            result = await ledger.facts.cite_fact(fact_id, args[1] if len(args) > 1 else None)
        console.print(
            f"{result.old_confidence:.3f} → [bold]{result.new_confidence:.3f}[/bold] "
            f"[dim](cascaded to {len(result.affected_arguments)} arguments)[/dim]"
        )
    elif cmd == "\\top":
        console.print(arguments_table("Top Arguments", await ledger.arguments.get_top_arguments()))
    elif cmd == "\\cluster":
        console.print(arguments_table("Cluster", await ledger.arguments.get_cluster_arguments(parse_id(rest))))
    elif cmd == "\\post":
        if not rest:
            raise ValidationFailure("Usage: \\post <post id>")
        console.print(arguments_table(f"Arguments in post {rest}", await ledger.arguments.get_post_arguments(rest)))
    elif cmd == "\\low":
        low = await ledger.facts.get_low_confidence_facts()
        console.print(facts_table("Low Confidence Facts", [l.fact for l in low]))
    elif cmd == "\\established":
        console.print(facts_table("Established Facts", await ledger.facts.get_established_facts()))
    elif cmd == "\\search":
        console.print(facts_table(f"Facts matching '{rest}'", await ledger.facts.search_facts(rest)))
    elif cmd == "\\similar":
        for title, matches in (
            ("Similar arguments", await ledger.arguments.search_arguments(rest)),
            ("Similar facts", await ledger.facts.find_similar_facts(rest)),
        ):
            table = Table(title=title)
            table.add_column("Similarity")
            table.add_column("Text", max_width=60)
            table.add_column("Confidence", width=28)
            for m in matches:
                table.add_row(f"{m.similarity:.3f}", m.content, confidence_bar(m.confidence))
            console.print(table)
    elif cmd == "\\init":
        if not isinstance(ledger.store, PostgresStore):
            console.print("[dim]In-memory store needs no schema.[/dim]")
        else:
            await db.init_schema(await db.get_pool())
            console.print("[green]✓ Schema ready[/green]")
    else:
        console.print(f"[red]Unknown command: {cmd}[/red]")
    return True


async def run_cli():
    console.print(Panel(
        "[bold]ARGUMENT LEDGER[/bold]\n"
        "Claims, confidence and how it spreads\n"
        "[dim]Type \\help for commands[/dim]",
        border_style="bright_blue",
    ))

    ledger = await open_ledger(LEDGER_STORE)
    console.print(f"[dim]✓ Using {LEDGER_STORE} store[/dim]\n")

    while True:
        try:
            user_input = console.input("[bold cyan]ledger>[/bold cyan] ").strip()
        except (EOFError, KeyboardInterrupt):
            break

        if not user_input:
            continue
        if not user_input.startswith("\\"):
            console.print("[dim]Commands start with a backslash. Type \\help.[/dim]")
            continue

        try:
            if not await handle_command(ledger, user_input):
                break
        except LedgerError as e:
            console.print(f"[red]{e}[/red]")
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            import traceback
            console.print(f"[dim]{traceback.format_exc()}[/dim]")

    await close_ledger(ledger)
    console.print("[dim]Goodbye.[/dim]")


def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    asyncio.run(run_cli())


if __name__ == "__main__":
    main()
