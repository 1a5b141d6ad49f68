"""
Command-line interface for bindashtree.

Subcommands:
- run: sketch genomes, compute the distance matrix and build the tree
- tree: build a tree from an existing PHYLIP distance matrix
- info: report available computational backends
"""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler

from bindashtree import __version__
from bindashtree._backend import get_backend_info
from bindashtree._config import RunConfig, SketchConfig, TreeConfig
from bindashtree._exceptions import BinDashTreeError
from bindashtree._io import read_genome_list
from bindashtree._matrix import DistanceMatrix
from bindashtree._pipeline import build_tree, run_pipeline

app = typer.Typer(
    name="bindashtree",
    help="Densified MinHash distances and neighbor-joining trees for genome collections",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        rprint(f"bindashtree version {__version__}")
        raise typer.Exit


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.WARNING if quiet else (logging.DEBUG if verbose else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _fail(error: BinDashTreeError) -> None:
    err_console.print(f"[red]Error: {error.message}[/red]")
    if error.suggestion:
        err_console.print(f"[yellow]Suggestion: {error.suggestion}[/yellow]")
    raise typer.Exit(code=1) from None


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    BinDashTree: genome distances by densified MinHash and rapid neighbor joining.
    """


@app.command(name="run")
def run(
    genome_list: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="File listing one genome path (FASTA/FASTQ, optionally gzipped) per line",
        exists=True,
        dir_okay=False,
    ),
    kmer_size: int = typer.Option(16, "--kmer-size", "-k", help="K-mer length (1-32)"),
    sketch_size: int = typer.Option(
        10240, "--sketch-size", "-s", help="Number of bins per sketch"
    ),
    densification: str = typer.Option(
        "optimal",
        "--densification",
        "-d",
        help="Densification strategy: optimal (0) or reverse (1)",
    ),
    threads: int = typer.Option(1, "--threads", "-t", help="Worker threads"),
    tree_method: str = typer.Option(
        "rapidnj", "--tree", help="Tree method: naive, rapidnj or hybrid"
    ),
    chunk_size: int = typer.Option(
        30, "--chunk-size", help="Candidate-list chunk size (rapidnj/hybrid)"
    ),
    naive_percentage: int = typer.Option(
        90, "--naive-percentage", help="Share of join steps run naively (hybrid)"
    ),
    seed: int = typer.Option(42, "--seed", help="Hash seed"),
    max_distance: float = typer.Option(
        1.0, "--max-distance", help="Distance assigned to unrelated or empty genomes"
    ),
    backend: str = typer.Option(
        "best", "--backend", help="Computational backend: best, python or cpu-parallel"
    ),
    output_matrix: Optional[Path] = typer.Option(
        None, "--output-matrix", help="Write the distance matrix (PHYLIP) here"
    ),
    output_tree: Optional[Path] = typer.Option(
        None, "--output-tree", help="Write the Newick tree here instead of stdout"
    ),
    exclude: Optional[List[Path]] = typer.Option(
        None,
        "--exclude",
        "-x",
        help="Genome that may be dropped if it cannot be read (repeatable)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only warnings and errors"),
) -> None:
    """
    Sketch every listed genome, compute pairwise distances and build a tree.

    Examples:

        bindashtree run -i genomes.txt -k 16 -s 10240 -t 8 --output-tree tree.nwk

        bindashtree run -i genomes.txt --tree hybrid --output-matrix dist.phylip
    """
    _configure_logging(verbose, quiet)
    try:
        config = RunConfig(
            sketch=SketchConfig(
                kmer_size=kmer_size,
                sketch_size=sketch_size,
                seed=seed,
                densification=densification,
            ),
            tree=TreeConfig(
                method=tree_method,
                chunk_size=chunk_size,
                naive_percentage=naive_percentage,
            ),
            threads=threads,
            max_distance=max_distance,
            backend=backend,
        )
        paths = read_genome_list(genome_list)
        result = run_pipeline(
            paths,
            config,
            excludable=exclude or (),
            matrix_path=output_matrix,
            tree_path=output_tree,
        )
    except BinDashTreeError as e:
        _fail(e)

    if output_tree is None:
        typer.echo(result.tree.to_newick())


@app.command(name="tree")
def tree(
    matrix_path: Path = typer.Option(
        ...,
        "--matrix",
        "-m",
        help="PHYLIP distance matrix (square or lower-triangular)",
        exists=True,
        dir_okay=False,
    ),
    tree_method: str = typer.Option(
        "rapidnj", "--tree", help="Tree method: naive, rapidnj or hybrid"
    ),
    chunk_size: int = typer.Option(30, "--chunk-size", help="Candidate-list chunk size"),
    naive_percentage: int = typer.Option(
        90, "--naive-percentage", help="Share of join steps run naively (hybrid)"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the Newick tree here instead of stdout"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only warnings and errors"),
) -> None:
    """
    Build a neighbor-joining tree from an existing distance matrix.
    """
    _configure_logging(verbose, quiet)
    try:
        config = TreeConfig(
            method=tree_method, chunk_size=chunk_size, naive_percentage=naive_percentage
        )
        matrix = DistanceMatrix.read_phylip(matrix_path)
        result = build_tree(matrix, config)
    except BinDashTreeError as e:
        _fail(e)

    newick = result.to_newick()
    if output is None:
        typer.echo(newick)
    else:
        output.write_text(newick + "\n")


@app.command(name="info")
def info() -> None:
    """Show which computational backends are available."""
    details = get_backend_info()
    console.print("[bold]bindashtree[/bold] " + __version__)
    console.print(f"  numba: {details['numba_version'] or 'not available'}")
    console.print(f"  numba threads: {details['numba_threads']}")
    console.print(f"  backends: {', '.join(details['backends'])}")
    console.print(f"  best backend: {details['best_backend']}")


if __name__ == "__main__":
    app()
