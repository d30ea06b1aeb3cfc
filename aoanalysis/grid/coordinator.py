"""
Grid of temporal PSDs over all spatial modes.

``make_psd_grid`` computes and stores the open-loop temporal PSD of every
mode in the half plane (m > 0, or m = 0 and n > 0) up to the fitting cutoff;
the other half holds the same PSDs, so each stored mode stands for two.
``analyze_psd_grid`` reloads the grid, optimizes the loop of each mode for
one or more guide star magnitudes and sums the residual variances.

Modes are independent, so both passes fan out over joblib workers. Results
are gathered per mode and summed afterwards in sorted mode order, which keeps
the totals reproducible whatever the worker count.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import partial
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import PreconditionError
from ..physics.ao_system import AOSystemModel, in_domain
from ..physics.lifetime import mode_lifetime
from ..physics.temporal import TemporalPSDEngine, TemporalPSDResult, psd_variance
from ..utils.compute import parallel_map, resolve_n_jobs, split_work
from ..utils.logging import ProgressTracker, Timer, get_logger
from .store import GridStore, save_array


logger = get_logger(__name__)

# Modes handed to the workers per batch (times the worker count)
MODES_PER_WORKER = 8


def half_plane_modes(mn_max: int, circular: bool = False) -> List[Tuple[int, int]]:
    """Modes (m, n) with m > 0, or m = 0 and n > 0, inside the domain; sorted."""
    modes = []
    for m in range(0, mn_max + 1):
        for n in range(-mn_max, mn_max + 1):
            if m == 0 and n <= 0:
                continue
            if in_domain(m, n, mn_max, circular):
                modes.append((m, n))
    return modes


def symmetric_map(values: Dict[Tuple[int, int], float], mn_max: int, fill: float = 0.0) -> np.ndarray:
    """Map over [-mn_max, mn_max]² from half-plane values, mirrored through the origin."""
    out = np.full((2 * mn_max + 1, 2 * mn_max + 1), fill, dtype=np.float64)
    for (m, n), value in values.items():
        out[mn_max + m, mn_max + n] = value
        out[mn_max - m, mn_max - n] = value
    return out


def mag_tag(star_mag: float) -> str:
    return f'{star_mag:g}'


@dataclass(frozen=True)
class GridTotals:
    """
    Residual variance summed over the grid for one star magnitude (rad²).

    ``lp_variance`` is None when the linear predictor was not run.
    """
    star_mag: float
    si_variance: float
    lp_variance: Optional[float]
    uncontrolled_variance: float
    n_controlled: int
    n_uncontrolled: int

    @property
    def total_si(self) -> float:
        return self.si_variance + self.uncontrolled_variance

    @property
    def total_lp(self) -> Optional[float]:
        if self.lp_variance is None:
            return None
        return self.lp_variance + self.uncontrolled_variance


@dataclass(frozen=True)
class ModeAnalysis:
    """Outcome of the loop optimization of one stored mode."""
    m: int
    n: int
    controlled: bool
    gain_si: float
    var_si: float
    gain_lp: float
    var_lp: float
    lifetime: float
    lifetime_std: float
    residual_si: Optional[np.ndarray] = None
    residual_lp: Optional[np.ndarray] = None


# =============================================================================
# Worker tasks (module level so joblib can pickle them)
# =============================================================================

def _compute_mode(mode: Tuple[int, int], engine: TemporalPSDEngine, freq, fmax: float, lp_nc: int) -> TemporalPSDResult:
    m, n = mode
    psd_ol = engine.open_loop_psd(freq, m, n, fmax)
    psd_noise = engine.noise_psd(freq, m, n)
    si, lp = engine.optimize(freq, psd_ol, psd_noise, m, n, lp_nc)
    if lp is not None and lp.variance < si.variance:
        return lp
    return si


def _analyze_mode(
    mode: Tuple[int, int],
    store: GridStore,
    engine: TemporalPSDEngine,
    fs: float,
    mn_con: float,
    circular: bool,
    lp_nc: int,
    lifetime_trials: int,
    uncontrolled_lifetimes: bool,
    keep_psds: bool,
    seed: int,
) -> ModeAnalysis:
    m, n = mode
    stored = store.read(m, n)
    freq = stored.freq
    psd_ol = stored.psd_ol

    if not in_domain(m, n, mn_con, circular):
        var_ol = psd_variance(freq, psd_ol)
        lifetime = (0.0, 0.0)
        if uncontrolled_lifetimes and lifetime_trials > 0:
            lifetime = mode_lifetime(freq, psd_ol, lifetime_trials, seed, m, n)
        return ModeAnalysis(m, n, False, 0.0, var_ol, 0.0, var_ol, *lifetime)

    psd_noise = engine.noise_psd(freq, m, n, fs)
    si, lp = engine.optimize(freq, psd_ol, psd_noise, m, n, lp_nc, fs)
    best = lp if lp is not None and lp.variance < si.variance else si

    lifetime = (0.0, 0.0)
    if lifetime_trials > 0:
        lifetime = mode_lifetime(freq, best.residual_psd, lifetime_trials, seed, m, n)

    return ModeAnalysis(
        m, n, True,
        si.gain, si.variance,
        lp.gain if lp is not None else -1.0,
        lp.variance if lp is not None else -1.0,
        *lifetime,
        residual_si=si.residual_psd if keep_psds else None,
        residual_lp=lp.residual_psd if keep_psds and lp is not None else None,
    )


# =============================================================================
# Grid Coordinator
# =============================================================================

class GridCoordinator:
    """
    Builds and analyzes the temporal PSD grid of an AO system.

    Args:
        model: AO system
        n_jobs: joblib worker count (None uses the backend setting)
    """

    def __init__(self, model: AOSystemModel, n_jobs: Optional[int] = None):
        self.model = model
        self.n_jobs = resolve_n_jobs(n_jobs)

    def _batches(self, modes: List[Tuple[int, int]]) -> List[List[Tuple[int, int]]]:
        n_batches = max(1, math.ceil(len(modes) / (self.n_jobs * MODES_PER_WORKER)))
        return [batch for batch in split_work(modes, n_batches) if batch]

    @staticmethod
    def _engine(model: AOSystemModel) -> TemporalPSDEngine:
        """Engine on a model whose operating point is already settled, so workers reuse it."""
        d, tau = model.d_opt, model.tau_opt
        logger.debug(f"Operating point d = {d:.4f} m, tau = {tau:.4g} s")
        return TemporalPSDEngine(model)

    def grid_params(self, dfreq: float, fmax: float, lp_nc: int) -> Dict[str, Any]:
        """Parameters recorded in ``params.yaml``; a grid is only resumed when they match."""
        cfg = self.model.config
        atm = self.model.atmosphere
        return {
            'fs': float(TemporalPSDEngine(self.model).loop_rate),
            'dfreq': float(dfreq),
            'fmax': float(fmax),
            'lp_nc': int(lp_nc),
            'fit_mn_max': int(self.model.fit_mn_max),
            'circular_limit': bool(cfg.circular_limit),
            'D': float(cfg.D),
            'delta_tau': float(cfg.delta_tau),
            'lam_sci': float(cfg.lam_sci),
            'lam_wfs': float(cfg.lam_wfs),
            'zeta': float(cfg.zeta),
            'wfs': cfg.wfs.name,
            'star_mag': float(cfg.star_mag),
            'r0': float(atm.r0),
            'lam_0': float(atm.lam_0),
            'L0': float(atm.L0),
            'v_wind': float(atm.v_wind),
            'layer_weights': [float(w) for w in atm.weights],
            'layer_z': [float(z) for z in atm.altitudes],
            'layer_v_wind': [float(v) for v in atm.wind_speeds],
            'layer_dir': [float(a) for a in atm.wind_directions],
            'component': self.model.psd.component.value,
        }

    def make_psd_grid(
        self,
        grid_dir: str,
        dfreq: float,
        fmax: float = 0.0,
        lp_nc: int = 0,
        overwrite: bool = False,
    ) -> GridStore:
        """
        Compute and store the temporal PSD of every half-plane mode.

        Modes already present in the store are kept unless ``overwrite``,
        so an interrupted run can be resumed. A grid built with different
        parameters is discarded and rebuilt.
        """
        store = GridStore(grid_dir)
        engine = self._engine(self.model)
        freq = engine.frequency_grid(dfreq)
        params = self.grid_params(dfreq, fmax, lp_nc)

        if store.modes():
            previous = store.read_params() if store.has_params() else None
            if overwrite:
                store.clear()
            elif previous != params:
                changed = sorted(k for k in params if previous is None or previous.get(k) != params[k])
                logger.warning(f"{store.grid_dir} was built with other parameters ({', '.join(changed)}); "
                               f"discarding {store.clear()} stored modes")

        modes = half_plane_modes(self.model.fit_mn_max, self.model.config.circular_limit)
        todo = [mode for mode in modes if not store.exists(*mode)]
        logger.info(f"PSD grid: {len(modes)} modes, {len(todo)} to compute, "
                    f"{len(freq)} frequencies, {self.n_jobs} jobs")

        store.write_params(params)

        task = partial(_compute_mode, engine=engine, freq=freq, fmax=fmax, lp_nc=lp_nc)
        tracker = ProgressTracker(len(todo), name="PSD grid", logger=logger)
        with Timer("PSD grid", logger):
            for batch in self._batches(todo):
                for result in parallel_map(task, batch, self.n_jobs):
                    store.write(result)
                    tracker.update()
        return store

    def analyze_psd_grid(
        self,
        grid_dir: str,
        sub_dir: str,
        star_mags: Sequence[float],
        lp_nc: int = 0,
        mn_con: Optional[float] = None,
        lifetime_trials: int = 0,
        uncontrolled_lifetimes: bool = False,
        write_psds: bool = False,
        seed: int = 0,
    ) -> List[GridTotals]:
        """
        Optimize every stored mode for each star magnitude and sum the variances.

        Args:
            grid_dir: Grid built by ``make_psd_grid``
            sub_dir: Output directory name inside ``grid_dir``
            star_mags: Guide star magnitudes, processed in order
            lp_nc: Linear-predictor coefficient count (≤ 1 skips the predictor)
            mn_con: Control radius (cycles/pupil); defaults to D/(2 d_min)
            lifetime_trials: Realizations per mode for the lifetime sampler
            uncontrolled_lifetimes: Also estimate lifetimes of uncontrolled modes
            write_psds: Store the closed-loop residual PSD of every mode
            seed: Seed of the lifetime sampler

        Returns:
            One GridTotals per star magnitude
        """
        if not sub_dir:
            raise PreconditionError("You must specify the output sub-directory (temporal.sub_dir)")
        store = GridStore(grid_dir)
        params = store.read_params()
        modes = store.modes()
        if not modes:
            raise PreconditionError(f"No PSDs found in {grid_dir}")

        cfg = self.model.config
        fs = float(params['fs'])
        mn_max = int(params.get('fit_mn_max', max(max(abs(m), abs(n)) for m, n in modes)))
        circular = bool(params.get('circular_limit', cfg.circular_limit))
        mn_con = cfg.mn_con_max if mn_con is None else mn_con

        out_dir = os.path.join(store.grid_dir, sub_dir)
        os.makedirs(out_dir, exist_ok=True)

        totals = []
        for star_mag in star_mags:
            engine = self._engine(self.model.with_star_mag(star_mag))
            task = partial(
                _analyze_mode,
                store=store,
                engine=engine,
                fs=fs,
                mn_con=mn_con,
                circular=circular,
                lp_nc=lp_nc,
                lifetime_trials=lifetime_trials,
                uncontrolled_lifetimes=uncontrolled_lifetimes,
                keep_psds=write_psds,
                seed=seed,
            )

            results: Dict[Tuple[int, int], ModeAnalysis] = {}
            tracker = ProgressTracker(len(modes), name=f"Analysis mag {mag_tag(star_mag)}", logger=logger)
            with Timer(f"Grid analysis, mag {mag_tag(star_mag)}", logger):
                for batch in self._batches(modes):
                    for analysis in parallel_map(task, batch, self.n_jobs):
                        results[(analysis.m, analysis.n)] = analysis
                        tracker.update()

            summary = self._summarize(star_mag, results, lp_nc)
            self._write_outputs(out_dir, star_mag, results, mn_max, lp_nc,
                                lifetime_trials, uncontrolled_lifetimes, write_psds, store)
            totals.append(summary)
            logger.info(f"mag {mag_tag(star_mag)}: SI {summary.total_si:.4g} rad^2"
                        + (f", LP {summary.total_lp:.4g} rad^2" if summary.total_lp is not None else ""))

        self._write_totals(out_dir, totals)
        return totals

    @staticmethod
    def _summarize(star_mag: float, results: Dict[Tuple[int, int], ModeAnalysis], lp_nc: int) -> GridTotals:
        si = lp = uncontrolled = 0.0
        n_con = n_unc = 0
        for mode in sorted(results):
            r = results[mode]
            if r.controlled:
                si += 2 * r.var_si
                lp += 2 * min(r.var_lp, r.var_si) if r.var_lp >= 0 else 2 * r.var_si
                n_con += 1
            else:
                uncontrolled += 2 * r.var_si
                n_unc += 1
        return GridTotals(
            star_mag=float(star_mag),
            si_variance=si,
            lp_variance=lp if lp_nc > 1 else None,
            uncontrolled_variance=uncontrolled,
            n_controlled=n_con,
            n_uncontrolled=n_unc,
        )

    @staticmethod
    def _write_outputs(out_dir, star_mag, results, mn_max, lp_nc,
                       lifetime_trials, uncontrolled_lifetimes, write_psds, store):
        tag = mag_tag(star_mag)
        controlled = {mode: r for mode, r in results.items() if r.controlled}

        save_array(os.path.join(out_dir, f'gainmap_si_{tag}.npy'),
                   symmetric_map({k: r.gain_si for k, r in controlled.items()}, mn_max))
        save_array(os.path.join(out_dir, f'varmap_si_{tag}.npy'),
                   symmetric_map({k: r.var_si for k, r in results.items()}, mn_max))
        if lp_nc > 1:
            save_array(os.path.join(out_dir, f'gainmap_lp_{tag}.npy'),
                       symmetric_map({k: r.gain_lp for k, r in controlled.items()}, mn_max))
            save_array(os.path.join(out_dir, f'varmap_lp_{tag}.npy'),
                       symmetric_map({k: r.var_lp for k, r in results.items()}, mn_max))

        if lifetime_trials > 0:
            shown = results if uncontrolled_lifetimes else controlled
            save_array(os.path.join(out_dir, f'lifetime_{tag}.npy'),
                       symmetric_map({k: r.lifetime for k, r in shown.items()}, mn_max))
            save_array(os.path.join(out_dir, f'lifetime_std_{tag}.npy'),
                       symmetric_map({k: r.lifetime_std for k, r in shown.items()}, mn_max))

        if write_psds:
            psd_dir = os.path.join(out_dir, f'psds_{tag}')
            os.makedirs(psd_dir, exist_ok=True)
            for (m, n), r in sorted(controlled.items()):
                arrays = {'freq': store.read(m, n).freq, 'residual_si': r.residual_si}
                if r.residual_lp is not None:
                    arrays['residual_lp'] = r.residual_lp
                np.savez(os.path.join(psd_dir, f'psd_{m}_{n}.npz'), **arrays)

    @staticmethod
    def _write_totals(out_dir: str, totals: List[GridTotals]):
        rows = np.array([
            [t.star_mag, t.total_si, t.total_lp if t.total_lp is not None else -1.0,
             t.uncontrolled_variance]
            for t in totals
        ])
        np.savetxt(os.path.join(out_dir, 'totals.txt'), rows,
                   header='mag SI-total LP-total OL-uncontrolled', fmt='%.8g')
