"""
Followgraph Command-Line Runner

File Purpose: Run the fetch pipeline from a terminal and write the graph as JSON
Primary Functions/Classes: main, build_parser
Inputs and Outputs (I/O): Bilibili API via the pipeline; JSON file output; Rich console progress
"""

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional

from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .config import PipelineConfig
from .exceptions import FollowGraphError, handle_error
from .models import GraphResult, console
from .network.cache import CacheStore
from .network.pipeline import FollowGraphPipeline


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="followgraph",
        description="Fetch a Bilibili follow network and write it as a graph.",
    )
    parser.add_argument("--mid", type=int, help="User id to inspect (default: the session user)")
    parser.add_argument("--sessdata", help="SESSDATA cookie for authenticated requests")
    parser.add_argument(
        "-o", "--output", type=Path, default=Path("followgraph.json"), help="Graph JSON output path"
    )
    parser.add_argument("--no-cache", action="store_true", help="Bypass the response cache")
    parser.add_argument("--clear-cache", action="store_true", help="Clear cached responses first")
    parser.add_argument(
        "--no-swap", action="store_true", help="Keep edges pointing follower -> followee"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def show_stats(result: GraphResult) -> None:
    tbl = Table(title="Follow graph")
    tbl.add_column("Metric", style="bold")
    tbl.add_column("Value", style="cyan")
    tbl.add_row("Followings", str(result.stats.total_nodes))
    tbl.add_row("Connected", str(result.stats.connected_nodes))
    tbl.add_row("Isolated", str(result.stats.total_nodes - result.stats.connected_nodes))
    tbl.add_row("Edges", str(result.stats.edge_count))
    tbl.add_row("Bidirectional edges", str(sum(1 for e in result.edges if e.bidirectional)))
    console.print(tbl)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    config = PipelineConfig.from_env().with_overrides(sessdata=args.sessdata)
    if args.no_cache:
        config = config.with_overrides(use_cache=False)
    if args.no_swap:
        config = config.with_overrides(swap_link_direction=False)

    if args.clear_cache:
        CacheStore(config.cache_dir, prefix=config.cache_prefix).clear()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as progress:
        tasks: Dict[str, int] = {}
        lock = threading.Lock()

        def on_progress(operation: str, current: int, total: int) -> None:
            with lock:
                if operation not in tasks:
                    tasks[operation] = progress.add_task(operation, total=total or None)
                progress.update(tasks[operation], completed=current, total=total or None)

        try:
            with FollowGraphPipeline(config, progress_callback=on_progress) as pipeline:
                result = pipeline.run(args.mid)
        except FollowGraphError as e:
            handle_error(console, e, "Follow graph", show_details=args.verbose)
            return 1

    args.output.write_text(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    show_stats(result)
    console.print(f"[green]Graph written to {args.output}[/]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
