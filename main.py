#!/usr/bin/env python3
"""
Feedback Graph Query System - natural-language questions over a Neo4j feedback graph
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.panel import Panel

# Setup logger
logger = logging.getLogger(__name__)

from feedback_graph.conversation.state import SessionStore
from feedback_graph.errors import FeedbackGraphError
from feedback_graph.kg.graph_client import GraphClient
from feedback_graph.kg.schema_discovery import SchemaCache
from feedback_graph.models.llm_manager import LLMManager
from feedback_graph.qa.executor import QueryExecutor
from feedback_graph.qa.pipeline import FeedbackQAPipeline
from feedback_graph.qa.synthesizer import AnswerSynthesizer
from feedback_graph.router.query_router import QueryRouter


def load_env_file():
    """Load environment variables from .env file if it exists."""
    env_file = Path(".env")
    if env_file.exists():
        with open(env_file, 'r') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))


def load_config(config_path: str = "config/config.yaml") -> dict:
    """Load configuration from YAML file."""
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}
        return config
    except FileNotFoundError:
        print(f"❌ Configuration file not found: {config_path}")
        sys.exit(1)
    except yaml.YAMLError as e:
        print(f"❌ Error parsing configuration file: {e}")
        sys.exit(1)


def setup_logging(config: dict):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    log_level = getattr(logging, log_config.get("level", "INFO"))
    log_format = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Create logs directory if it doesn't exist
    log_file = log_config.get("file", "logs/feedback_graph.log")
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


class FeedbackQuerySystem:
    """Main Feedback Graph Query System class."""

    def __init__(self, config: dict):
        self.config = config
        self.console = Console()
        self.debug_mode = config.get("debug", {}).get("enabled", False)

        # Initialize components
        self.llm_manager = LLMManager(config.get("llm", {}))
        self.graph_client = GraphClient(config.get("neo4j", {}))
        self.schema_cache = SchemaCache(self.graph_client, config.get("schema", {}))
        self.router = QueryRouter(config.get("translator", {}), self.llm_manager)
        self.executor = QueryExecutor(self.graph_client, self.llm_manager, config.get("executor", {}))
        self.synthesizer = AnswerSynthesizer(self.llm_manager, config.get("synthesizer", {}))
        self.sessions = SessionStore(config.get("conversation", {}))

        pipeline_config = dict(config.get("pipeline", {}))
        pipeline_config["debug"] = self.debug_mode
        self.pipeline = FeedbackQAPipeline(
            pipeline_config,
            self.schema_cache,
            self.router,
            self.executor,
            self.synthesizer,
            sessions=self.sessions
        )

    async def query(self, question: str, session_id: str = "default") -> dict:
        """
        Answer a question through the pipeline.

        Args:
            question: The user's natural language question
            session_id: Conversation session for follow-up questions

        Returns:
            Pipeline payload (answer or error)
        """
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True
        ) as progress:
            progress.add_task("Answering question...", total=None)
            return await self.pipeline.answer_user_query(question, session_id=session_id)

    def display_result(self, response: dict, debug: bool = False):
        """Display query results in a formatted way."""
        if "error" in response:
            self.console.print(Panel(
                response["error"],
                title="[bold red]Error[/bold red]",
                border_style="red"
            ))
            if debug and response.get("details"):
                self.console.print(f"[dim]{response['details']}[/dim]")
            return

        info_table = Table(title="Query Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="white")

        confidence = response.get("confidence")
        info_table.add_row("Method", response["method"])
        info_table.add_row("Confidence", f"{confidence:.2f}" if confidence is not None else "n/a")
        info_table.add_row("Rows", str(response["row_count"]))
        info_table.add_row("Repaired", "Yes" if response.get("repaired") else "No")
        if not response.get("expects_results", True):
            info_table.add_row("Data Tracked", "No")

        self.console.print(info_table)

        answer_panel = Panel(
            response["answer"],
            title="[bold blue]Answer[/bold blue]",
            border_style="blue"
        )
        self.console.print(answer_panel)

        if debug and response.get("query"):
            self.console.print(Panel(
                response["query"],
                title="[bold]Cypher[/bold]",
                border_style="dim"
            ))
            if response.get("parameters"):
                self.console.print(f"[dim]Parameters: {response['parameters']}[/dim]")

    async def show_schema(self):
        """Print the schema description used for translation."""
        try:
            schema = await self.schema_cache.get_schema()
        except FeedbackGraphError as e:
            self.console.print(f"[red]{e.user_message}[/red]")
            logger.error(f"Schema unavailable: {e.details}")
            return
        self.console.print(Panel(
            schema.rendered_description,
            title="[bold blue]Graph Schema[/bold blue]",
            border_style="blue"
        ))

    async def show_stats(self):
        """Display system statistics."""
        graph_stats = await self.graph_client.get_stats()
        router_stats = self.router.get_routing_stats()

        graph_table = Table(title="Feedback Graph Statistics")
        graph_table.add_column("Metric", style="cyan")
        graph_table.add_column("Value", style="white")

        if "error" not in graph_stats:
            graph_table.add_row("Neo4j URI", graph_stats["neo4j_uri"])
            graph_table.add_row("Total Nodes", str(graph_stats["total_nodes"]))
            graph_table.add_row("Total Relationships", str(graph_stats["total_relationships"]))
            graph_table.add_row("Labels", ", ".join(graph_stats["labels"]))
            graph_table.add_row("Relationship Types", ", ".join(graph_stats["relationship_types"]))
        else:
            graph_table.add_row("Status", f"Error: {graph_stats['error']}")

        router_table = Table(title="Translation Settings")
        router_table.add_column("Setting", style="cyan")
        router_table.add_column("Value", style="white")

        router_table.add_row("Strategies", " -> ".join(router_stats["strategies"]))
        router_table.add_row("Similarity Threshold", f"{router_stats['similarity_threshold']:.2f}")
        router_table.add_row("Templates", str(len(router_stats["templates"])))
        router_table.add_row("Intents", str(len(router_stats["intents"])))
        router_table.add_row("LLM Providers", ", ".join(self.llm_manager.get_available_providers()))

        self.console.print(graph_table)
        self.console.print(router_table)

    async def interactive_mode(self):
        """Run the system in interactive mode."""
        self.console.print(Panel(
            "[bold blue]Feedback Graph Query System[/bold blue]\n"
            "Ask questions about reported issues, solutions, users and products.\n"
            "Follow-up questions can refer to earlier answers.\n"
            "Type 'quit' to exit, 'reset' to start over, 'schema' to see the graph schema, 'help' for commands.",
            border_style="blue"
        ))

        session_id = "interactive"
        while True:
            try:
                question = click.prompt("\nQuestion")
                command = question.strip().lower()

                if command in ['quit', 'exit', 'q']:
                    break
                elif command == 'reset':
                    self.pipeline.reset_session(session_id)
                    self.console.print("[green]Conversation reset.[/green]")
                    continue
                elif command == 'schema':
                    await self.show_schema()
                    continue
                elif command == 'help':
                    self.console.print("""
                    [bold]Available Commands:[/bold]
                    • Ask any question about the feedback graph
                    • 'reset' - Forget the conversation so far
                    • 'schema' - Show the discovered graph schema
                    • 'help' - Show this help message
                    • 'quit' - Exit the system
                    """)
                    continue
                elif not command:
                    continue

                response = await self.query(question, session_id=session_id)
                self.display_result(response, debug=self.debug_mode)

            except (KeyboardInterrupt, click.Abort):
                self.console.print("\n[yellow]Exiting...[/yellow]")
                break
            except Exception as e:
                self.console.print(f"[red]Error: {e}[/red]")

    async def close(self):
        await self.graph_client.close()


def run_with_system(config: dict, action):
    """Build the system, run an async action with it, and close connections."""
    async def runner():
        system = FeedbackQuerySystem(config)
        try:
            return await action(system)
        finally:
            await system.close()

    return asyncio.run(runner())


@click.group()
@click.option('--config', '-c', default='config/config.yaml', help='Configuration file path')
@click.option('--debug', '-d', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, config, debug):
    """Feedback Graph Query System CLI."""
    # Load environment variables first
    load_env_file()

    ctx.ensure_object(dict)
    ctx.obj['config'] = load_config(config)
    ctx.obj['debug'] = debug

    # Enable debug mode in config
    if debug:
        ctx.obj['config'].setdefault('debug', {})['enabled'] = True
        ctx.obj['config'].setdefault('logging', {})['level'] = 'DEBUG'

    setup_logging(ctx.obj['config'])


@cli.command()
@click.argument('question')
@click.pass_context
def query(ctx, question):
    """Ask the feedback graph a question."""
    async def run_query(system: FeedbackQuerySystem):
        response = await system.query(question)
        system.display_result(response, debug=ctx.obj['debug'])

    run_with_system(ctx.obj['config'], run_query)


@cli.command()
@click.pass_context
def interactive(ctx):
    """Start interactive query mode."""
    async def run_interactive(system: FeedbackQuerySystem):
        try:
            await system.schema_cache.initialize()
        except FeedbackGraphError as e:
            system.console.print(f"[yellow]{e.user_message}[/yellow]")
        await system.interactive_mode()

    run_with_system(ctx.obj['config'], run_interactive)


@cli.command()
@click.pass_context
def schema(ctx):
    """Show the discovered graph schema."""
    async def run_schema(system: FeedbackQuerySystem):
        await system.show_schema()

    run_with_system(ctx.obj['config'], run_schema)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show system statistics."""
    async def run_stats(system: FeedbackQuerySystem):
        await system.show_stats()

    run_with_system(ctx.obj['config'], run_stats)


if __name__ == "__main__":
    cli()
