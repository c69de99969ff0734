from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd

import plotly.graph_objects as go
from plotly.subplots import make_subplots
from scipy import stats

logger = logging.getLogger(__name__)

PERIOD_COLORS = {'early': '#1f77b4', 'late': '#d62728'}


def save_plotly(fig: go.Figure, html_out: Path, png_out: Path | None = None, width: int = 1500, height: int = 520) -> List[Path]:
    """Write HTML (always) and PNG (when kaleido can render it)."""
    written: List[Path] = []

    if png_out is not None:
        png_out.parent.mkdir(parents=True, exist_ok=True)
        try:
            fig.write_image(png_out, width=width, height=height, scale=2)
            written.append(png_out)
        except Exception as e:
            # PNG export needs kaleido and a working renderer
            logger.warning('Could not write PNG %s: %s', png_out.name, e)

    html_out.parent.mkdir(parents=True, exist_ok=True)
    fig.update_layout(autosize=True)
    fig.layout.width = None
    fig.layout.height = None
    fig.write_html(
        html_out,
        include_plotlyjs='cdn',
        config={'responsive': True, 'displayModeBar': False},
    )
    written.append(html_out)
    return written


def nominal_cpue_figure(nominal: pd.DataFrame, split_year: int, value_col: str = 'ratio_cpue') -> go.Figure:
    """Nominal CPUE by year, one line per species (nominal table by species/year)."""
    fig = go.Figure()
    for species, g in nominal.groupby('species'):
        g = g.sort_values('year')
        fig.add_trace(go.Scatter(
            x=g['year'],
            y=g[value_col],
            mode='lines+markers',
            name=str(species),
            customdata=np.stack([g['n_records'], g['prop_positive']], axis=-1),
            hovertemplate='Year=%{x}<br>CPUE=%{y:.3f}<br>Records=%{customdata[0]}<br>Positive=%{customdata[1]:.0%}<extra></extra>',
        ))

    fig.add_vline(x=split_year - 0.5, line_dash='dash')
    fig.update_layout(
        title=dict(text='Nominal CPUE by species (catch / hours fished)', x=0.02, xanchor='left'),
        xaxis_title='Year',
        yaxis_title='Nominal CPUE (kg / h)',
        template='plotly_white',
        hovermode='x unified',
        legend=dict(orientation='h', yanchor='bottom', y=1.02, xanchor='right', x=1.0),
        margin=dict(t=90),
    )
    return fig


def index_comparison_figure(combined: pd.DataFrame, species: str) -> go.Figure:
    """Standardized vs nominal (both mean 1) for every area/period series of one species."""
    sub = combined[combined['species'] == species].copy()
    series = sub[['period', 'area']].drop_duplicates().sort_values(['period', 'area']).to_records(index=False).tolist()
    n = max(len(series), 1)

    fig = make_subplots(
        rows=n, cols=1,
        shared_xaxes=False,
        vertical_spacing=min(0.08, 0.3 / n),
        subplot_titles=[f'{p} period, area {a}' for p, a in series] or [species],
    )

    for i, (period, area) in enumerate(series, start=1):
        g = sub[(sub['period'] == period) & (sub['area'] == area)].sort_values('year')
        color = PERIOD_COLORS.get(period, '#444')
        first = i == 1

        ok = g.dropna(subset=['lower', 'upper'])
        if len(ok):
            fig.add_trace(go.Scatter(
                x=pd.concat([ok['year'], ok['year'][::-1]]),
                y=pd.concat([ok['upper'], ok['lower'][::-1]]),
                fill='toself',
                name='95% interval',
                hoverinfo='skip',
                line=dict(width=0),
                fillcolor=color,
                opacity=0.2,
                showlegend=first,
                legendgroup='ci',
            ), row=i, col=1)

        fig.add_trace(go.Scatter(
            x=g['year'], y=g['standardized'], mode='lines+markers',
            name='Standardized', line=dict(width=3, color=color),
            showlegend=first, legendgroup='std',
        ), row=i, col=1)
        fig.add_trace(go.Scatter(
            x=g['year'], y=g['nominal'], mode='lines+markers',
            name='Nominal', line=dict(width=2, dash='dot', color='#555'),
            showlegend=first, legendgroup='nom',
        ), row=i, col=1)
        fig.add_hline(y=1.0, line_dash='dash', line_color='#aaa', row=i, col=1)
        fig.update_yaxes(title_text='Relative CPUE', row=i, col=1)

    fig.update_xaxes(title_text='Year', row=n, col=1)
    fig.update_layout(
        title=dict(text=f'{species}: standardized vs nominal CPUE (each series rescaled to mean 1)', x=0.02, xanchor='left'),
        template='plotly_white',
        height=max(420, 280 * n),
        legend=dict(orientation='h', x=0.02, xanchor='left', y=1.02, yanchor='bottom'),
        margin=dict(l=85, r=40, t=110, b=60),
    )
    return fig


def residual_diagnostics_figure(residuals: pd.DataFrame, title: str) -> go.Figure:
    """Residuals vs fitted, normal Q-Q and residuals by year for one model."""
    r = residuals.dropna(subset=['fitted', 'residual']).copy()

    fig = make_subplots(
        rows=1, cols=3,
        subplot_titles=['Residuals vs fitted', 'Normal Q-Q', 'Residuals by year'],
        horizontal_spacing=0.07,
    )

    fig.add_trace(go.Scattergl(
        x=r['fitted'], y=r['residual'], mode='markers',
        marker=dict(size=4, opacity=0.5), name='residual', showlegend=False,
    ), row=1, col=1)
    fig.add_hline(y=0.0, line_dash='dash', row=1, col=1)

    if len(r) > 1:
        sample = np.sort(r['residual'].to_numpy(dtype=float))
        probs = (np.arange(1, len(sample) + 1) - 0.5) / len(sample)
        theo = stats.norm.ppf(probs)
        scale = sample.std(ddof=1)
        fig.add_trace(go.Scattergl(
            x=theo, y=sample, mode='markers',
            marker=dict(size=4, opacity=0.6), showlegend=False,
        ), row=1, col=2)
        fig.add_trace(go.Scatter(
            x=[theo[0], theo[-1]], y=[theo[0] * scale + sample.mean(), theo[-1] * scale + sample.mean()],
            mode='lines', line=dict(dash='dash'), showlegend=False,
        ), row=1, col=2)

    fig.add_trace(go.Box(
        x=r['year'].astype(int), y=r['residual'], boxpoints=False, showlegend=False,
    ), row=1, col=3)

    fig.update_xaxes(title_text='Fitted log(CPUE)', row=1, col=1)
    fig.update_xaxes(title_text='Theoretical quantile', row=1, col=2)
    fig.update_xaxes(title_text='Year', row=1, col=3)
    fig.update_yaxes(title_text='Residual', row=1, col=1)

    fig.update_layout(
        title=dict(text=title, x=0.02, xanchor='left'),
        template='plotly_white',
        margin=dict(t=90),
    )
    return fig


def delta_components_figure(late_index: pd.DataFrame) -> go.Figure:
    """Proportion positive and positive-catch index by species (late period)."""
    fig = make_subplots(
        rows=2, cols=1, shared_xaxes=True, vertical_spacing=0.08,
        subplot_titles=['Proportion of positive records (binomial part)', 'Mean CPUE when positive (lognormal part)'],
    )
    for species, g in late_index.groupby('species'):
        g = g.sort_values('year')
        fig.add_trace(go.Scatter(x=g['year'], y=g['prop_positive'], mode='lines+markers',
                                 name=str(species), legendgroup=str(species)), row=1, col=1)
        fig.add_trace(go.Scatter(x=g['year'], y=g['positive_index'], mode='lines+markers',
                                 name=str(species), legendgroup=str(species), showlegend=False), row=2, col=1)

    fig.update_yaxes(title_text='P(catch > 0)', tickformat='.0%', row=1, col=1)
    fig.update_yaxes(title_text='CPUE | positive', row=2, col=1)
    fig.update_xaxes(title_text='Year', row=2, col=1)
    fig.update_layout(
        title=dict(text='Delta-lognormal components (late period)', x=0.02, xanchor='left'),
        template='plotly_white',
        hovermode='x unified',
        height=760,
        margin=dict(t=110),
    )
    return fig


def _slug(s) -> str:
    return ''.join(ch if ch.isalnum() else '_' for ch in str(s).lower()).strip('_')


def make_all_figures(
    fig_dir: Path,
    nominal_species_year: pd.DataFrame,
    combined: pd.DataFrame,
    residuals: pd.DataFrame,
    late_index: pd.DataFrame,
    split_year: int,
    png: bool = True,
) -> List[Path]:
    """Write every diagnostic figure under ``fig_dir``; returns the files written."""
    fig_dir = Path(fig_dir)
    fig_dir.mkdir(parents=True, exist_ok=True)
    outputs: List[Path] = []

    def _out(name: str) -> tuple[Path, Optional[Path]]:
        return fig_dir / f'{name}.html', (fig_dir / f'{name}.png' if png else None)

    if len(nominal_species_year):
        html, png_out = _out('fig01_nominal_cpue')
        outputs += save_plotly(nominal_cpue_figure(nominal_species_year, split_year), html, png_out, height=560)

    for species in sorted(combined['species'].unique()) if len(combined) else []:
        html, png_out = _out(f'fig02_index_{_slug(species)}')
        fig = index_comparison_figure(combined, species)
        n = combined.loc[combined['species'] == species, ['period', 'area']].drop_duplicates().shape[0]
        outputs += save_plotly(fig, html, png_out, height=max(420, 280 * n))

    if len(residuals):
        for (model, species), g in residuals.groupby(['model', 'species']):
            html, png_out = _out(f'fig03_residuals_{_slug(model)}_{_slug(species)}')
            label = 'log-linear (early)' if model == 'loglinear' else 'delta-lognormal positive part (late)'
            fig = residual_diagnostics_figure(g, f'{species}: {label} residual diagnostics')
            outputs += save_plotly(fig, html, png_out, height=480)

    if len(late_index):
        html, png_out = _out('fig04_delta_components')
        outputs += save_plotly(delta_components_figure(late_index), html, png_out, height=760)

    logger.info('Wrote %d figure files to %s', len(outputs), fig_dir)
    return outputs
