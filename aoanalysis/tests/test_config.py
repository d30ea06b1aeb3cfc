"""
Tests for configuration management.
"""

import math

import pytest


class TestConfig:
    """Tests for Config class."""

    def test_default_init(self):
        """Defaults start from the MagAOX preset with nothing overridden."""
        from aoanalysis.config import Config

        cfg = Config()
        assert cfg.model == 'MagAOX'
        assert cfg.system.D is None
        assert cfg.atmosphere.lam_0 == 0.0
        assert cfg.temporal.dfreq == 0.1
        assert cfg.output.wfe_units == 'rad'
        assert cfg.compute.precision == 'float64'

    def test_default_resolve(self):
        """Resolving the defaults gives the preset system."""
        from aoanalysis.config import Config

        resolved = Config().resolve()
        assert resolved.system.D == 6.5
        assert resolved.system.wfs.name == 'unmodPyWFS'
        assert resolved.atmosphere.n_layers == 7
        assert resolved.psd.scintillation is True
        assert resolved.star_mags == ()

    def test_from_dict(self):
        """Known keys are applied, unknown keys collected."""
        from aoanalysis.config import Config

        cfg = Config.from_dict({
            'model': 'Guyon2005',
            'system': {'D': 10.0, 'bogus': 1},
            'temporal': {'lp_nc': 4},
            'extra': 2,
        })
        assert cfg.model == 'Guyon2005'
        assert cfg.system.D == 10.0
        assert cfg.temporal.lp_nc == 4
        assert cfg.unknown_keys == ['system.bogus', 'extra']

    def test_from_dict_exponent_numbers(self):
        """Exponent-only numbers read as strings by YAML become floats."""
        from aoanalysis.config import Config

        cfg = Config.from_dict({'system': {'tau_wfs': '1e-3', 'wfs': 'idealWFS'}})
        assert cfg.system.tau_wfs == pytest.approx(1e-3)
        assert cfg.system.wfs == 'idealWFS'

    def test_to_dict(self):
        """to_dict has every section and no bookkeeping."""
        from aoanalysis.config import Config

        d = Config().to_dict()
        assert set(d) == {'model', 'atmosphere', 'psd', 'system', 'temporal', 'output', 'compute'}


class TestSetOption:
    """Tests for command-line style overrides."""

    @pytest.mark.parametrize('key,text,expected', [
        ('system.star_mags', '[0, 5, 10]', [0, 5, 10]),
        ('system.min_tau_wfs', '1e-3', 1e-3),
        ('system.D', '8', 8),
        ('psd.scintillation', 'false', False),
        ('atmosphere.layer_v_wind', '[1e1, 2.5e1]', [10.0, 25.0]),
        ('temporal.grid_dir', '001', '001'),
        ('system.wfs', 'asympModPyWFS', 'asympModPyWFS'),
    ])
    def test_parsing(self, key, text, expected):
        """String values are parsed as YAML numbers, lists and booleans."""
        from aoanalysis.config import Config

        cfg = Config()
        assert cfg.set_option(key, text) is True
        section, name = key.split('.')
        assert getattr(getattr(cfg, section), name) == expected

    def test_unknown_key(self):
        """Unknown keys are reported, not raised."""
        from aoanalysis.config import Config

        cfg = Config()
        assert cfg.set_option('system.bogus', '1') is False
        assert cfg.set_option('nosection.D', '1') is False
        assert cfg.unknown_keys == ['system.bogus', 'nosection.D']

    def test_model(self):
        """The preset name is a top-level option."""
        from aoanalysis.config import Config

        cfg = Config()
        cfg.set_option('model', 'GMagAOX')
        assert cfg.resolve().system.D == 25.4

    def test_bad_precision(self):
        """Unknown precisions are rejected."""
        from aoanalysis.config import Config
        from aoanalysis.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            Config().set_option('compute.precision', 'float16')


class TestResolve:
    """Tests for preset resolution and override order."""

    def _single_layer(self, cfg, **extra):
        values = {
            'atmosphere.layer_z': [0.0],
            'atmosphere.layer_v_wind': [10.0],
            'atmosphere.layer_dir': [0.0],
        }
        values.update(extra)
        for key, value in values.items():
            cfg.set_option(key, value)
        return cfg

    def test_absolute_cn2(self):
        """With lam_0 > 0 layer Cn2 values set r0."""
        from aoanalysis.config import Config
        from aoanalysis.physics.atmosphere import CN2_TO_R0

        cfg = self._single_layer(Config(), **{
            'atmosphere.lam_0': 0.5e-6,
            'atmosphere.layer_Cn2': [1e-13],
        })
        atm = cfg.resolve().atmosphere
        k0 = 2 * math.pi / 0.5e-6
        assert atm.n_layers == 1
        assert atm.r0 == pytest.approx((CN2_TO_R0 * k0**2 * 1e-13) ** (-3 / 5))

    def test_r0_wins_over_cn2(self):
        """An explicit r_0 overrides the strength implied by absolute Cn2."""
        from aoanalysis.config import Config

        cfg = self._single_layer(Config(), **{
            'atmosphere.lam_0': 0.5e-6,
            'atmosphere.layer_Cn2': [1e-13],
            'atmosphere.r_0': 0.2,
        })
        atm = cfg.resolve().atmosphere
        assert atm.r0 == pytest.approx(0.2)
        assert atm.lam_0 == pytest.approx(0.5e-6)

    def test_lam_0_alone_moves_reference(self):
        """lam_0 without Cn2 or r_0 only moves the reference wavelength of r0."""
        from aoanalysis.config import Config

        base = Config().resolve().atmosphere
        cfg = Config()
        cfg.set_option('atmosphere.lam_0', 1.0e-6)
        atm = cfg.resolve().atmosphere
        assert atm.lam_0 == pytest.approx(1.0e-6)
        assert atm.r0 == pytest.approx(base.r0_at_wavelength(1.0e-6))
        assert atm.r0_at_wavelength(base.lam_0) == pytest.approx(base.r0)

    def test_relative_cn2_keeps_r0(self):
        """Without lam_0 layer Cn2 values are relative weights."""
        from aoanalysis.config import Config

        cfg = Config()
        cfg.set_option('atmosphere.layer_Cn2', [1, 1, 1, 1, 1, 1, 2])
        atm = cfg.resolve().atmosphere
        assert atm.r0 == pytest.approx(0.16)
        assert atm.weights[-1] == pytest.approx(0.25)

    def test_mean_rescales_last(self):
        """v_wind and z_mean rescale the final layer vectors."""
        from aoanalysis.config import Config

        cfg = Config()
        cfg.set_option('atmosphere.v_wind', 20.0)
        cfg.set_option('atmosphere.z_mean', 3000.0)
        atm = cfg.resolve().atmosphere
        assert atm.v_wind == pytest.approx(20.0)
        assert atm.z_mean == pytest.approx(3000.0)

    def test_layer_length_mismatch(self):
        """Vectors of a new length must all be given."""
        from aoanalysis.config import Config
        from aoanalysis.errors import ConfigurationError

        cfg = Config()
        cfg.set_option('atmosphere.layer_v_wind', [10.0, 20.0])
        with pytest.raises(ConfigurationError):
            cfg.resolve()

    def test_unknown_model(self):
        """Unknown presets are a configuration error."""
        from aoanalysis.config import Config
        from aoanalysis.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            Config(model='Bogus').resolve()

    def test_unknown_units(self):
        """Only rad and nm are valid wavefront error units."""
        from aoanalysis.config import Config
        from aoanalysis.errors import ConfigurationError

        cfg = Config()
        cfg.set_option('output.wfe_units', 'um')
        with pytest.raises(ConfigurationError):
            cfg.resolve()

    def test_star_mag_sweep(self):
        """build_model moves the guide star only."""
        from aoanalysis.config import Config

        cfg = Config()
        cfg.set_option('system.star_mags', '[5, 10]')
        resolved = cfg.resolve()
        assert resolved.star_mags == (5.0, 10.0)
        assert resolved.build_model(10.0).config.star_mag == 10.0
        assert resolved.build_model(10.0).config.D == resolved.system.D

    def test_setup_dump(self, tmp_path, backend):
        """The setup summary is valid YAML with derived values."""
        import yaml
        from aoanalysis.config import Config

        cfg = Config()
        cfg.set_option('system.fit_mn_max', 10)
        path = cfg.resolve().dump_setup(str(tmp_path / 'setup.yaml'))
        with open(path) as f:
            setup = yaml.safe_load(f)
        assert setup['model'] == 'MagAOX'
        assert setup['system']['wfs'] == 'unmodPyWFS'
        assert 0 < setup['derived']['strehl'] <= 1
        assert len(setup['atmosphere']['layer_Cn2']) == 7


class TestConfigIO:
    """Tests for config file I/O."""

    def test_save_load_yaml(self, tmp_path):
        """YAML round trip."""
        from aoanalysis.config import Config, load_config, save_config

        cfg = Config(model='Guyon2005')
        cfg.set_option('system.star_mags', [1.0, 2.0])
        cfg.set_option('atmosphere.r_0', 0.12)
        path = str(tmp_path / 'config.yaml')

        save_config(cfg, path)
        loaded = load_config(path)
        assert loaded.to_dict() == cfg.to_dict()
        assert loaded.unknown_keys == []

    def test_save_load_json(self, tmp_path):
        """JSON round trip."""
        from aoanalysis.config import Config, load_config, save_config

        cfg = Config()
        cfg.set_option('temporal.lp_nc', 6)
        path = str(tmp_path / 'config.json')

        save_config(cfg, path)
        assert load_config(path).temporal.lp_nc == 6

    def test_unknown_format(self, tmp_path):
        """Only YAML and JSON files are supported."""
        from aoanalysis.config import Config, load_config, save_config
        from aoanalysis.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            load_config(str(tmp_path / 'config.txt'))
        with pytest.raises(ConfigurationError):
            save_config(Config(), str(tmp_path / 'config.ini'))


class TestPresets:
    """Tests for the model presets."""

    @pytest.mark.parametrize('name', ['Guyon2005', 'MagAOX', 'GMagAOX'])
    def test_presets_resolve(self, name):
        """Every preset resolves into a consistent system."""
        from aoanalysis.config import Config

        resolved = Config(model=name).resolve()
        assert resolved.system.D > 0
        assert resolved.atmosphere.weights.sum() == pytest.approx(1.0)

    def test_apply_preset(self):
        """apply_preset validates the name."""
        from aoanalysis.config import apply_preset, get_default_config
        from aoanalysis.errors import ConfigurationError

        cfg = apply_preset(get_default_config(), 'Guyon2005')
        assert cfg.model == 'Guyon2005'
        with pytest.raises(ConfigurationError):
            apply_preset(cfg, 'Bogus')
