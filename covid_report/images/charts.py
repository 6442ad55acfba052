"""Report charts. Each function saves one image file and closes its figure."""

from __future__ import annotations

import matplotlib

matplotlib.use('Agg')

import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation, PillowWriter
import pandas as pd
import seaborn as sns
from loguru import logger


def _save(fig, path, dpi):
    fig.tight_layout()
    fig.savefig(path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    logger.debug(f"Saved {path}")


def _region_frame(frame: pd.DataFrame, region: str) -> pd.DataFrame:
    return frame[frame['region'] == region].sort_values('date')


#1. Cumulative confirmed / deaths / recovered / active
def plot_cumulative(frame: pd.DataFrame, region: str, path, dpi: int = 150) -> None:
    data = _region_frame(frame, region)
    fig, ax = plt.subplots(figsize=(12, 6))
    for column, color in [('confirmed', 'tab:blue'), ('active_confirmed', 'orange'),
                          ('recovered', 'green'), ('deaths', 'red')]:
        ax.plot(data['date'], data[column], label=column.replace('_', ' ').title(), color=color, linewidth=2)
    ax.set_title(f'{region} - Cumulative Cases', fontsize=14, fontweight='bold')
    ax.set_xlabel('Date')
    ax.set_ylabel('Cases')
    ax.legend()
    ax.grid(True, alpha=0.3)
    ax.tick_params(axis='x', rotation=45)
    _save(fig, path, dpi)


#2. Daily new cases with rolling mean
def plot_daily_new(frame: pd.DataFrame, region: str, path, window: int = 7, dpi: int = 150) -> None:
    data = _region_frame(frame, region)
    # NaN deltas are unknown, not zero: bars are skipped and the mean ignores them
    rolling = data['new_confirmed'].rolling(window, min_periods=1).mean()

    bars = data.dropna(subset=['new_confirmed'])

    fig, ax = plt.subplots(figsize=(12, 6))
    ax.bar(bars['date'], bars['new_confirmed'], color='lightgray', label='New confirmed')
    ax.plot(data['date'], rolling, color='darkorange', linewidth=2, label=f'{window}-day mean')
    ax.set_title(f'{region} - Daily New Confirmed Cases', fontsize=14, fontweight='bold')
    ax.set_xlabel('Date')
    ax.set_ylabel('New cases')
    ax.legend()
    ax.grid(True, alpha=0.3)
    ax.tick_params(axis='x', rotation=45)
    _save(fig, path, dpi)


#3. Death-rate estimators
def plot_death_rates(frame: pd.DataFrame, region: str, path, dpi: int = 150) -> None:
    data = _region_frame(frame, region)
    fig, ax = plt.subplots(figsize=(12, 6))
    ax.plot(data['date'], data['rate_upper'], color='red', linewidth=2, label='Upper: D / (D + R)')
    ax.plot(data['date'], data['rate_lower'], color='tab:blue', linewidth=2, label='Lower: D / C')
    ax.plot(data['date'], data['rate_daily'], color='gray', linewidth=1, alpha=0.7,
            marker='o', markersize=2, label='Daily: dD / (dD + dR)')
    ax.set_title(f'{region} - Death Rate Estimates (%)', fontsize=14, fontweight='bold')
    ax.set_xlabel('Date')
    ax.set_ylabel('Death rate (%)')
    ax.set_ylim(0, 100)
    ax.legend()
    ax.grid(True, alpha=0.3)
    ax.tick_params(axis='x', rotation=45)
    _save(fig, path, dpi)


#4. Top regions by confirmed cases on the latest day
def plot_top_regions(latest: pd.DataFrame, path, top_n: int = 10, dpi: int = 150) -> None:
    top = latest.nlargest(top_n, 'confirmed').sort_values('confirmed')
    fig, ax = plt.subplots(figsize=(10, max(4, 0.5 * len(top))))
    ax.barh(top['region'], top['confirmed'], color='orange', label='Confirmed')
    ax.barh(top['region'], top['deaths'].fillna(0), color='red', label='Deaths')
    ax.set_title(f'Top {len(top)} Regions by Confirmed Cases', fontsize=14, fontweight='bold')
    ax.set_xlabel('Cases')
    ax.legend()
    ax.grid(True, alpha=0.3, axis='x')
    _save(fig, path, dpi)


#5. Discrepancy counts by region and kind
def plot_discrepancy_heatmap(flags: pd.DataFrame, path, top_n: int = 20, dpi: int = 150) -> None:
    fig, ax = plt.subplots(figsize=(10, 8))
    if flags.empty:
        ax.text(0.5, 0.5, 'No discrepancies', ha='center', va='center', fontsize=14)
        ax.set_axis_off()
    else:
        counts = flags.pivot_table(index='region', columns='kind', values='field', aggfunc='count', fill_value=0).astype(int)
        counts = counts.loc[counts.sum(axis=1).nlargest(top_n).index]
        sns.heatmap(counts, annot=True, fmt='d', cmap='viridis', ax=ax)
        ax.set_xlabel('')
        ax.set_ylabel('Region')
    ax.set_title('Data Quality Discrepancies', fontsize=14, fontweight='bold')
    _save(fig, path, dpi)


#6. Animated bar race of the top regions, one frame per date
def _frame_dates(dates: list, frames: int) -> list:
    if len(dates) <= frames:
        return dates
    if frames < 2:
        return dates[-1:]
    # evenly spaced, always ending on the latest day
    picked = [dates[round(i * (len(dates) - 1) / (frames - 1))] for i in range(frames)]
    return list(dict.fromkeys(picked))


def plot_bar_race(frame: pd.DataFrame, path, top_n: int = 10, exclude=(), frames: int = 100,
                  fps: int = 20, dpi: int = 80) -> int:
    """Save a GIF of the ``top_n`` regions by confirmed cases over time; returns the frame count."""
    data = frame[~frame['region'].isin(exclude)].dropna(subset=['confirmed'])
    by_day = {pd.Timestamp(day): rows for day, rows in data.groupby('date')}
    dates = _frame_dates(sorted(by_day), frames)
    regions = sorted(data['region'].unique())
    palette = dict(zip(regions, sns.color_palette('husl', len(regions))))

    fig, ax = plt.subplots(figsize=(10, max(4, 0.5 * top_n)))

    def draw(day):
        ax.clear()
        if day is None:
            ax.text(0.5, 0.5, 'No data', ha='center', va='center', fontsize=14)
            ax.set_axis_off()
            return
        top = by_day[day].nlargest(top_n, 'confirmed').sort_values('confirmed')
        ax.barh(top['region'], top['confirmed'], color=[palette[r] for r in top['region']])
        ax.set_title(f'Date: {day:%Y-%m-%d}', fontsize=14, fontweight='bold')
        ax.set_xlabel('Confirmed cases')
        ax.grid(True, alpha=0.3, axis='x')

    sequence = dates or [None]
    anim = FuncAnimation(fig, draw, frames=sequence, repeat=False)
    anim.save(path, writer=PillowWriter(fps=fps), dpi=dpi)
    plt.close(fig)
    logger.debug(f"Saved {path} ({len(sequence)} frames)")
    return len(sequence)
