"""
Analysis routines.

Each routine takes a resolved configuration and a text stream, prints its
table to the stream and returns 0 on success or -1 when a physical
precondition is not met (the reason is logged). Array outputs go to
``out_dir``.
"""

from __future__ import annotations

import functools
import os
import sys
from typing import Callable, TextIO

import numpy as np

from .config import ResolvedConfig
from .errors import PreconditionError
from .grid import GridCoordinator
from .grid.store import save_array
from .physics.ao_system import units_scale
from .physics.temporal import TemporalPSDEngine
from .utils.logging import Timer, get_logger


logger = get_logger(__name__)

# Short names of the per-mode error categories
TERM_ALIASES = {
    'C0': 'uncorrected_phase',
    'C1': 'uncorrected_amplitude',
    'C2': 'residual_phase',
    'C4': 'chromatic_scintillation',
    'C6': 'chromatic_index',
    'C7': 'dispersive_anisoplanatism',
}

ERROR_BUDGET_HEADER = ('#mag d_opt Measurement Time-delay Fitting Chr-Scint-OPD '
                       'Chr-Index Disp-Aniso-OPD NCP-error Strehl')

TEMPORAL_PSD_HEADER = '# freq PSD-OL PSD-N ETF-SI NTF-SI ETF-LP NTF-LP'


def term_name(term: str) -> str:
    """Canonical category name; accepts the C<N> short names."""
    return TERM_ALIASES.get(term, term)


def _fmt(value: float) -> str:
    return f'{value:.8g}'


def _require_fit_domain(resolved: ResolvedConfig):
    if resolved.system.fit_mn_max <= 0:
        raise PreconditionError("You must set fit_mn_max > 0")


def _routine(func: Callable) -> Callable:
    """Report precondition failures as -1 instead of raising."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> int:
        try:
            return func(*args, **kwargs)
        except PreconditionError as e:
            logger.error(f"{func.__name__}: {e}")
            return -1
    return wrapper


# =============================================================================
# Spatial error maps
# =============================================================================

@_routine
def raw(resolved: ResolvedConfig, term: str, stream: TextIO = sys.stdout, out_dir: str = '.') -> int:
    """
    Per-radial-index series of one error category, plus its full 2D map.

    Prints ``index value`` for index 0 … fit_mn_max-1 and writes
    ``<term>Raw.npy`` (half-width ``mn_map``).
    """
    name = term_name(term)
    model = resolved.build_model()
    series = model.term_series(name)

    save_array(os.path.join(out_dir, f'{term}Raw.npy'), model.term_map(name, resolved.output.mn_map))
    for i, value in enumerate(series):
        stream.write(f'{i} {_fmt(value)}\n')
    return 0


@_routine
def map_term(resolved: ResolvedConfig, term: str, stream: TextIO = sys.stdout, out_dir: str = '.') -> int:
    """Write ``<term>Map.npy`` and print its profile along n = 0, m ≥ 0."""
    name = term_name(term)
    model = resolved.build_model()
    mn_map = resolved.output.mn_map
    values = model.term_map(name, mn_map)

    save_array(os.path.join(out_dir, f'{term}Map.npy'), values)
    for i in range(mn_map + 1):
        stream.write(f'{i} {_fmt(values[mn_map + i, mn_map])}\n')
    return 0


@_routine
def all_raw(resolved: ResolvedConfig, stream: TextIO = sys.stdout) -> int:
    """One row per radial index with all six categories."""
    model = resolved.build_model()
    columns = [model.term_series(name) for name in TERM_ALIASES.values()]

    stream.write('# index ' + ' '.join(TERM_ALIASES) + '\n')
    for i, row in enumerate(zip(*columns)):
        stream.write(f'{i} ' + ' '.join(_fmt(v) for v in row) + '\n')
    return 0


# =============================================================================
# Error budget
# =============================================================================

@_routine
def error_budget(resolved: ResolvedConfig, stream: TextIO = sys.stdout) -> int:
    """
    RMS error budget in ``wfe_units``.

    Without a magnitude sweep: five lines (measurement, time delay, fitting,
    NCP, Strehl). With ``star_mags``: a header and one row per magnitude.
    """
    scale = units_scale(resolved.output.wfe_units, resolved.system.lam_sci)

    if not resolved.star_mags:
        budget = resolved.build_model().budget
        rms = budget.rms(scale)
        stream.write(f"Measurement: {_fmt(rms['measurement'])}\n")
        stream.write(f"Time-delay:  {_fmt(rms['time_delay'])}\n")
        stream.write(f"Fitting:     {_fmt(rms['fitting'])}\n")
        stream.write(f"NCP error:   {_fmt(rms['ncp'])}\n")
        stream.write(f"Strehl:      {_fmt(budget.strehl)}\n")
        return 0

    stream.write(ERROR_BUDGET_HEADER + '\n')
    for star_mag in resolved.star_mags:
        model = resolved.build_model(star_mag)
        budget = model.budget
        rms = budget.rms(scale)
        row = [star_mag, model.d_opt] + [
            rms[name] for name in (
                'measurement',
                'time_delay',
                'fitting',
                'chromatic_scintillation_opd',
                'chromatic_index',
                'dispersive_anisoplanatism_opd',
                'ncp',
            )
        ] + [budget.strehl]
        stream.write(' '.join(_fmt(v) for v in row) + '\n')
    return 0


@_routine
def strehl(resolved: ResolvedConfig, stream: TextIO = sys.stdout) -> int:
    stream.write(f'{_fmt(resolved.build_model().strehl())}\n')
    return 0


# =============================================================================
# Temporal PSDs
# =============================================================================

@_routine
def temporal_psd(resolved: ResolvedConfig, stream: TextIO = sys.stdout) -> int:
    """
    Open-loop and noise PSDs of mode (k_m, k_n) with the optimized loop.

    LP columns are -1 unless lp_nc > 1.
    """
    t = resolved.temporal
    engine = TemporalPSDEngine(resolved.build_model())
    fs = engine.loop_rate
    if not t.dfreq > 0:
        raise PreconditionError("You must set dfreq > 0 to specify frequency sampling")

    with Timer(f"Temporal PSD of mode ({t.k_m}, {t.k_n})", logger):
        si, lp = engine.analyze_mode(t.k_m, t.k_n, t.dfreq, t.fmax, t.lp_nc, fs)

    stream.write('# aoanalysis single temporal PSD\n')
    stream.write(f'#    mode = ({t.k_m}, {t.k_n})\n')
    stream.write(f'#    var OL = {_fmt(si.open_loop_variance)}\n')
    stream.write(f'#    opt-gain SI = {_fmt(si.gain)}\n')
    stream.write(f'#    var SI = {_fmt(si.variance)}\n')
    stream.write(f'#    LP Num. coeff = {t.lp_nc}\n')
    stream.write(f'#    opt-gain LP = {_fmt(lp.gain if lp is not None else -1)}\n')
    stream.write(f'#    var LP = {_fmt(lp.variance if lp is not None else -1)}\n')
    stream.write('#' * 65 + '\n')
    stream.write(TEMPORAL_PSD_HEADER + '\n')

    fill = np.full(len(si.freq), -1.0)
    etf_lp = lp.etf if lp is not None else fill
    ntf_lp = lp.ntf if lp is not None else fill
    for row in zip(si.freq, si.psd_ol, si.psd_noise, si.etf, si.ntf, etf_lp, ntf_lp):
        stream.write(' '.join(_fmt(v) for v in row) + '\n')
    return 0


@_routine
def temporal_psd_grid(resolved: ResolvedConfig, stream: TextIO = sys.stdout) -> int:
    """Compute and store the open-loop PSD of every mode in ``grid_dir``."""
    t = resolved.temporal
    if not t.grid_dir:
        raise PreconditionError("You must set grid_dir")
    _require_fit_domain(resolved)
    model = resolved.build_model()
    if not t.dfreq > 0:
        raise PreconditionError("You must set dfreq > 0 to specify frequency sampling")

    coordinator = GridCoordinator(model, n_jobs=t.n_jobs)
    store = coordinator.make_psd_grid(t.grid_dir, t.dfreq, t.fmax, t.lp_nc)
    stream.write(f'# PSD grid: {len(store.modes())} modes in {store.grid_dir}\n')
    return 0


@_routine
def analyze_grid(resolved: ResolvedConfig, stream: TextIO = sys.stdout) -> int:
    """
    Optimize the loop of every stored mode at each star magnitude.

    Prints the totals table also written to ``grid_dir/sub_dir/totals.txt``.
    """
    t = resolved.temporal
    if not t.grid_dir:
        raise PreconditionError("You must set grid_dir")
    if not t.sub_dir:
        raise PreconditionError("You must set sub_dir")
    _require_fit_domain(resolved)
    model = resolved.build_model()

    star_mags = resolved.star_mags or (resolved.system.star_mag,)
    coordinator = GridCoordinator(model, n_jobs=t.n_jobs)
    totals = coordinator.analyze_psd_grid(
        t.grid_dir,
        t.sub_dir,
        star_mags,
        lp_nc=t.lp_nc,
        lifetime_trials=t.lifetime_trials,
        uncontrolled_lifetimes=t.uncontrolled_lifetimes,
        write_psds=t.write_psds,
        seed=t.seed,
    )

    stream.write('# mag SI-total LP-total OL-uncontrolled\n')
    for total in totals:
        lp = total.total_lp if total.total_lp is not None else -1.0
        stream.write(' '.join(_fmt(v) for v in (total.star_mag, total.total_si, lp,
                                                 total.uncontrolled_variance)) + '\n')
    return 0
