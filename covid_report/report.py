"""Tables and the HTML document for one report run."""

from __future__ import annotations

import html
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
import seaborn as sns
from loguru import logger

from covid_report.analysis.records import DerivedSnapshot
from covid_report.errors import OutputDirectoryError
from covid_report.images import charts

TITLES = {
    'world': 'COVID-19 World Report',
    'china': 'COVID-19 China Report',
}
SUMMARY_COLUMNS = ['confirmed', 'deaths', 'recovered', 'active_confirmed',
                   'new_confirmed', 'new_deaths', 'rate_upper', 'rate_lower', 'rate_daily']


def latest_table(frame: pd.DataFrame, top_n: int | None = None, exclude=()) -> pd.DataFrame:
    """Latest record of every region, largest confirmed count first."""
    latest = (
        frame[~frame['region'].isin(exclude)]
        .sort_values('date')
        .groupby('region', as_index=False)
        .tail(1)
        .sort_values(['confirmed', 'region'], ascending=[False, True], na_position='last')
    )
    columns = ['region', 'date', 'confirmed', 'deaths', 'recovered', 'active_confirmed',
               'new_confirmed', 'new_deaths', 'rate_upper', 'rate_lower']
    latest = latest[columns].reset_index(drop=True)
    return latest.head(top_n) if top_n else latest


def summary_table(frame: pd.DataFrame, region: str) -> pd.DataFrame:
    """count/mean/std/min/max of each metric of one region over the whole period."""
    df = frame[frame['region'] == region]
    summary = df[SUMMARY_COLUMNS].describe().T
    summary = summary[['count', 'mean', 'std', 'min', 'max']]

    summary = summary.reset_index()
    summary.rename(columns={'index': 'Variable'}, inplace=True)

    if df.empty:
        summary['Time Period'] = ''
    else:
        start_date = df['date'].min().strftime('%Y-%m-%d')
        end_date = df['date'].max().strftime('%Y-%m-%d')
        summary['Time Period'] = f"{start_date} to {end_date}"
    summary['Region'] = region
    return summary


def rolling_mean(frame: pd.DataFrame, column: str = 'new_confirmed', window: int = 7) -> pd.Series:
    """Per-region rolling mean that skips missing values instead of counting them as zero."""
    ordered = frame.sort_values(['region', 'date'])
    return (
        ordered.groupby('region')[column]
        .transform(lambda s: s.rolling(window, min_periods=1).mean())
        .reindex(frame.index)
    )


def _html_document(title: str, generated: str, aggregate: str, images: list[tuple[str, str]],
                   latest: pd.DataFrame, summary: pd.DataFrame, flag_counts: pd.DataFrame) -> str:
    figures = '\n'.join(
        f'<figure><img src="{html.escape(name)}" alt="{html.escape(caption)}">'
        f'<figcaption>{html.escape(caption)}</figcaption></figure>'
        for name, caption in images
    )
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{html.escape(title)}</title>
<style>
body {{ font-family: sans-serif; margin: 2em; }}
img {{ max-width: 100%; }}
table {{ border-collapse: collapse; font-size: 0.9em; }}
td, th {{ border: 1px solid #ccc; padding: 0.2em 0.5em; }}
</style>
</head>
<body>
<h1>{html.escape(title)}</h1>
<p>Generated {html.escape(generated)}. Death rates are percentages rounded to one decimal
(round half to even). Upper: deaths / (deaths + recovered). Lower: deaths / confirmed.
Daily: new deaths / (new deaths + new recovered).</p>
<h2>{html.escape(aggregate)} summary</h2>
{summary.to_html(index=False, float_format=lambda v: f'{v:,.1f}', na_rep='')}
<h2>Latest figures</h2>
{latest.to_html(index=False, float_format=lambda v: f'{v:,.1f}', na_rep='')}
<h2>Charts</h2>
{figures}
<h2>Data quality</h2>
{flag_counts.to_html(index=False) if not flag_counts.empty else '<p>No discrepancies.</p>'}
<p>Full lists: <a href="daily_records.csv">daily_records.csv</a>,
<a href="discrepancies.csv">discrepancies.csv</a>.</p>
</body>
</html>
"""


def _render(snapshot: DerivedSnapshot, edition: str, target: Path, aggregate: str, report_config: dict[str, Any]):
    dpi = report_config.get('dpi', 150)
    top_n = report_config.get('top_n', 10)
    window = report_config.get('rolling_window', 7)

    frame = snapshot.to_frame()
    flags = snapshot.flags_frame()
    frame[f'new_confirmed_mean_{window}d'] = rolling_mean(frame, 'new_confirmed', window)

    latest = latest_table(frame, exclude=(aggregate,))
    summary = summary_table(frame, aggregate)
    flag_counts = (
        flags.groupby('kind').size().rename('count').reset_index()
        if not flags.empty else flags
    )

    frame.to_csv(target / 'daily_records.csv', index=False)
    flags.to_csv(target / 'discrepancies.csv', index=False)
    latest.to_csv(target / 'latest.csv', index=False)
    summary.to_csv(target / 'summary.csv', index=False)

    images = [
        ('cumulative.png', f'{aggregate}: cumulative cases'),
        ('daily_new.png', f'{aggregate}: daily new confirmed cases'),
        ('death_rates.png', f'{aggregate}: death-rate estimators'),
        ('top_regions.png', f'Top {top_n} regions'),
        ('discrepancies.png', 'Discrepancies by region'),
        ('bar_race.gif', f'Top {top_n} regions over time'),
    ]
    charts.plot_cumulative(frame, aggregate, target / 'cumulative.png', dpi)
    charts.plot_daily_new(frame, aggregate, target / 'daily_new.png', window, dpi)
    charts.plot_death_rates(frame, aggregate, target / 'death_rates.png', dpi)
    charts.plot_top_regions(latest, target / 'top_regions.png', top_n, dpi)
    charts.plot_discrepancy_heatmap(flags, target / 'discrepancies.png', dpi=dpi)
    charts.plot_bar_race(
        frame, target / 'bar_race.gif', top_n, exclude=(aggregate,),
        frames=report_config.get('animation_frames', 100),
        fps=report_config.get('animation_fps', 20),
        dpi=report_config.get('animation_dpi', 80),
    )

    generated = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')
    document = _html_document(TITLES.get(edition, 'COVID-19 Report'), generated, aggregate,
                              images, latest.head(top_n), summary, flag_counts)
    (target / 'index.html').write_text(document, encoding='utf-8')


def write_report(snapshot: DerivedSnapshot, edition: str, output_dir, report_config: dict[str, Any],
                 aggregate: str = 'World') -> Path:
    """Write every table, chart and ``index.html`` into ``output_dir``.

    Files are rendered into a sibling temporary directory that replaces
    ``output_dir`` only once everything has been written.
    """
    sns.set_style(report_config.get('style', 'whitegrid'))

    target = Path(output_dir).resolve()
    if target.exists() and any(target.iterdir()) and not (target / "index.html").exists():
        raise OutputDirectoryError(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f'.{target.name}-', dir=target.parent))
    try:
        _render(snapshot, edition, staging, aggregate, report_config)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    # the previous report is moved aside and only deleted once the new one is in place
    retired = staging.with_name(f'{staging.name}-old')
    if target.exists():
        target.rename(retired)
    try:
        staging.rename(target)
    except OSError:
        if retired.exists():
            retired.rename(target)
        shutil.rmtree(staging, ignore_errors=True)
        raise
    if retired.exists():
        try:
            shutil.rmtree(retired)
        except OSError as e:
            logger.warning(f"Could not remove previous report {retired}: {e}")
    logger.info(f"Report written to {target}")
    return target
