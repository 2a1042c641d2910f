#!/usr/bin/env python3
"""
Memtrace Heap Log Viewer

Converts a memtrace heap log into a DataView time-series document:
  1. Total HEAP memory in use over elapsed time ("inuse" series)
  2. One series per memory context callstack still holding allocations

The document is written as TOML next to the log (memtrace.log -> memtrace.log.toml).
Optionally renders a PNG chart and/or opens the document in dataviewer.

Usage:
    python3 memtrace-view.py memtrace.log
    python3 memtrace-view.py memtrace.log --chart memtrace.png --top 5
    python3 memtrace-view.py memtrace.log.toml --from-toml --chart memtrace.png

Requirements:
    pip install matplotlib tomli-w
"""

import argparse
import shutil
import subprocess
from pathlib import Path
import sys

# Add lib directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'lib'))

from chart_utils import (
    check_dependencies, setup_dark_theme, style_axis, style_figure,
    save_chart, series_colors, axis_label, THEME
)

check_dependencies(['matplotlib', 'tomli_w'])

from dataview import ChartType, DataViewer, INUSE_KEY, load_dataviewer
from memtrace import ParseError, parse_file

import matplotlib.pyplot as plt

VIEWER_PROGRAM = 'dataviewer'


def default_output_path(log_path: Path) -> Path:
    """memtrace.log -> memtrace.log.toml, trace -> trace.log.toml"""
    return log_path.with_name(log_path.stem + '.log.toml')


def top_contexts(viewer: DataViewer, limit: int) -> list[str]:
    """Memory context series keys ordered by their last sample, largest first."""
    keys = [k for k in viewer.series_keys() if k != INUSE_KEY]
    keys.sort(key=lambda k: (-viewer.samples(k)[1][-1], int(k)))
    return keys[:limit]


def series_style(chart_type, linewidth: float) -> dict:
    """Plot style for a chart type: XY is a scatter, Line joins the samples."""
    if chart_type == ChartType.LINE:
        return {'linestyle': '-', 'linewidth': linewidth, 'marker': None}
    return {'linestyle': 'none', 'marker': 'o'}


def chart_dataview(viewer: DataViewer, output_path: Path, top: int = 10):
    """Render the in-use series and the top memory contexts as one chart."""
    meta = viewer.dataview
    setup_dark_theme()
    fig, ax = plt.subplots(figsize=(14, 8), dpi=150)

    hours, kbytes = viewer.samples(INUSE_KEY)
    if hours:
        ax.plot(hours, kbytes, color=THEME['primary'], markersize=3, **series_style(meta['type'], 2.5),
                label=viewer.chart[INUSE_KEY].get('title') or INUSE_KEY)

    contexts = top_contexts(viewer, top)
    colors = series_colors(len(contexts))
    for i, key in enumerate(contexts):
        hours, kbytes = viewer.samples(key)
        ax.plot(hours, kbytes, color=colors[i], markersize=2, **series_style(meta['type'], 1.5),
                label=f'UID {key} ({kbytes[-1]:.1f} {meta.get("y_unit") or "KBytes"})', alpha=0.8)

    ax.set_xlabel(axis_label(meta.get('x_title'), meta.get('x_unit')), fontsize=12, color=THEME['text'])
    ax.set_ylabel(axis_label(meta.get('y_title'), meta.get('y_unit')), fontsize=12, color=THEME['text'])
    ax.set_title(meta.get('title') or '', fontsize=14, fontweight='bold', color=THEME['primary'])

    if meta.get('x_min') is not None or meta.get('x_max') is not None:
        ax.set_xlim(left=meta.get('x_min'), right=meta.get('x_max'))
    if meta.get('y_min') is not None or meta.get('y_max') is not None:
        ax.set_ylim(bottom=meta.get('y_min'), top=meta.get('y_max'))
    else:
        ax.set_ylim(bottom=0)

    if ax.get_legend_handles_labels()[0]:
        ax.legend(loc='center left', bbox_to_anchor=(1.01, 0.5), fontsize=9,
                  facecolor=THEME['legend_face'], edgecolor=THEME['grid'])

    style_axis(ax)
    style_figure(fig)
    plt.tight_layout()
    save_chart(fig, output_path, facecolor=THEME['background'])
    print(f"✓ Chart saved: {output_path}")


def launch_viewer(doc_path: Path) -> int:
    """Open the document in the external dataviewer program and wait for it."""
    program = shutil.which(VIEWER_PROGRAM)
    if program is None:
        raise FileNotFoundError(f"'{VIEWER_PROGRAM}' not found in PATH")
    print(f"Starting: {VIEWER_PROGRAM} {doc_path}")
    result = subprocess.run([program, str(doc_path)], capture_output=True)
    return result.returncode


def print_summary(viewer: DataViewer, top: int = 10):
    """Print summary statistics."""
    hours, kbytes = viewer.samples(INUSE_KEY)
    print("\n=== Memtrace Summary ===")
    if not hours:
        print("No 'in use' samples found")
        return

    print(f"Snapshots: {len(hours)}")
    print(f"Elapsed: {hours[-1]:.2f} h")
    print(f"Starting in use: {kbytes[0]:.1f} KBytes")
    print(f"Final in use: {kbytes[-1]:.1f} KBytes")
    print(f"Peak in use: {max(kbytes):.1f} KBytes")
    print(f"Memory contexts: {len(viewer.registry)} unique callstacks")

    contexts = top_contexts(viewer, top)
    if contexts:
        print(f"\nLargest memory contexts at last sample (top {len(contexts)}):")
        for key in contexts:
            ctx_kbytes = viewer.samples(key)[1]
            first_frame = (viewer.chart[key].get('description') or '').strip().split('\n')[0]
            print(f"  UID {key}: {ctx_kbytes[-1]:.1f} KBytes  {first_frame}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='View a memtrace log file with dataviewer',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python3 memtrace-view.py memtrace.log
    python3 memtrace-view.py memtrace.log --output heap.toml --chart heap.png
    python3 memtrace-view.py memtrace.log --viewer

Log format:
    HEAP SUMMARY Mon Jan 01 00:00:00 2024
    3 allocs, 2000 bytes were not free
    <callstack lines, ended by a blank line>
        in use: 500000 bytes
        """
    )
    parser.add_argument('file',
                        help='Path to memtrace.log file')
    parser.add_argument('--output', '-o',
                        help='Output document path (default: <file>.log.toml)')
    parser.add_argument('--from-toml', action='store_true',
                        help='Treat file as a previously written document instead of a log')
    parser.add_argument('--chart',
                        help='Render a PNG chart to this path')
    parser.add_argument('--top', type=int, default=10,
                        help='Memory context series to chart and summarize (default: 10)')
    parser.add_argument('--viewer', action='store_true',
                        help=f'Open the written document in {VIEWER_PROGRAM}')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Do not print the summary')

    args = parser.parse_args(argv)

    log_path = Path(args.file)
    if not log_path.exists():
        print(f"Error: Input file not found: {log_path}")
        sys.exit(1)

    try:
        if args.from_toml:
            print(f"Loading document from: {log_path}")
            viewer = load_dataviewer(log_path)
        else:
            print(f"Parsing memtrace log: {log_path}")
            viewer = parse_file(log_path)
    except ParseError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"Error: Could not read {log_path}: {e}")
        sys.exit(1)

    doc_path = log_path
    if not args.from_toml or args.output:
        doc_path = Path(args.output) if args.output else default_output_path(log_path)
        viewer.write(doc_path)
        print(f"✓ Write dataviewer file to {doc_path}")

    if args.chart:
        chart_dataview(viewer, Path(args.chart), top=args.top)

    if not args.quiet:
        print_summary(viewer, top=args.top)

    if args.viewer:
        try:
            returncode = launch_viewer(doc_path)
        except OSError as e:
            print(f"Error: Could not start {VIEWER_PROGRAM}: {e}")
            sys.exit(1)
        if returncode != 0:
            print(f"Warning: {VIEWER_PROGRAM} exited with status {returncode}")


if __name__ == '__main__':
    main()
