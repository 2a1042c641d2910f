#!/usr/bin/env python3
"""
chart_utils.py - Shared utilities for memtrace chart rendering

Usage:
    from chart_utils import check_dependencies, setup_dark_theme, style_axis
"""

import sys


def check_dependencies(required: list[str]) -> None:
    """
    Check if required packages are installed.

    Args:
        required: List of package names to check (e.g., ['matplotlib'])
    """
    missing = []
    for pkg in required:
        try:
            __import__(pkg)
        except ImportError:
            missing.append(pkg)

    if missing:
        print(f"ERROR: Missing required Python packages: {', '.join(missing)}")
        print("\nInstall with:")
        print(f"  pip install {' '.join(missing)}")
        print(f"  # or: sudo apt install {' '.join(f'python3-{p}' for p in missing)}")
        sys.exit(1)


# Dark theme colors
THEME = {
    'background': '#0d1117',
    'text': '#ffffff',
    'grid': '#444444',
    'spine': '#444444',
    'tick': '#888888',
    'legend_face': '#1a1a2e',
    # Chart colors
    'primary': '#00d4aa',
}


def setup_dark_theme():
    """Apply dark theme to matplotlib."""
    import matplotlib.pyplot as plt
    plt.style.use('dark_background')


def style_axis(ax, show_grid: bool = True):
    """
    Apply consistent dark theme styling to an axis.

    Args:
        ax: Matplotlib axis object
        show_grid: Whether to show gridlines
    """
    ax.set_facecolor(THEME['background'])

    for spine in ax.spines.values():
        spine.set_color(THEME['spine'])

    ax.tick_params(colors=THEME['tick'])

    if show_grid:
        ax.grid(True, alpha=0.3, color=THEME['grid'])


def style_figure(fig):
    """Apply dark theme to figure background."""
    fig.set_facecolor(THEME['background'])


def series_colors(count: int) -> list:
    """Distinct colors for memory context series (tab20 palette, cycled)."""
    import matplotlib.pyplot as plt
    return [plt.cm.tab20(i % 20) for i in range(count)]


def axis_label(title: str | None, unit: str | None) -> str:
    """Build an axis label like 'Elapsed Time (Hour)'."""
    if title and unit:
        return f'{title} ({unit})'
    return title or unit or ''


def save_chart(fig, output_path, dpi: int = 150, facecolor: str | None = None):
    """
    Save chart with consistent settings.

    Args:
        fig: Matplotlib figure object
        output_path: Path to save the chart
        dpi: Resolution (default 150)
        facecolor: Background color. If None, uses figure's current facecolor.
                   Use THEME['background'] for dark theme charts.
    """
    import matplotlib.pyplot as plt
    save_kwargs = {
        'bbox_inches': 'tight',
        'dpi': dpi,
        'edgecolor': 'none',
    }
    if facecolor is not None:
        save_kwargs['facecolor'] = facecolor
    fig.savefig(output_path, **save_kwargs)
    plt.close(fig)
