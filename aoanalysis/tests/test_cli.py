"""
Tests for the command-line interface.
"""

import os

import pytest
import yaml


@pytest.fixture(autouse=True)
def no_debug(monkeypatch):
    monkeypatch.delenv('AOANALYSIS_DEBUG', raising=False)


class TestCLI:
    """Tests for the aoanalysis entry point."""

    def test_info(self, capsys):
        """info lists presets, sensors and terms."""
        from aoanalysis.cli import main

        with pytest.raises(SystemExit) as exc:
            main(['info'])
        assert exc.value.code == 0
        out = capsys.readouterr().out
        assert 'MagAOX' in out
        assert 'unmodPyWFS' in out
        assert 'C2: residual_phase' in out

    def test_no_command(self):
        """No command prints help and exits non-zero."""
        from aoanalysis.cli import main

        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1

    def test_stray_arguments(self):
        """Unrecognized arguments are ignored with a warning."""
        from aoanalysis.cli import main

        with pytest.raises(SystemExit) as exc:
            main(['info', '--bogus'])
        assert exc.value.code == 0

    def test_unknown_model(self, tmp_path, monkeypatch):
        """An unknown preset exits with -1."""
        from aoanalysis.cli import main

        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as exc:
            main(['strehl', '--model', 'Bogus'])
        assert exc.value.code == -1

    def test_strehl_with_setup(self, tmp_path, monkeypatch, capsys):
        """A successful run prints its result and dumps the setup."""
        from aoanalysis.cli import main

        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as exc:
            main(['strehl', '--model', 'Guyon2005',
                  '--set', 'system.fit_mn_max=20',
                  '--set', 'system.min_tau_wfs=1e-3'])
        assert exc.value.code == 0
        assert 0 < float(capsys.readouterr().out.split()[-1]) <= 1

        with open(tmp_path / 'aoanalysisSetup.yaml') as f:
            setup = yaml.safe_load(f)
        assert setup['model'] == 'Guyon2005'
        assert setup['system']['fit_mn_max'] == 20

    def test_config_file(self, tmp_path, monkeypatch, capsys):
        """Options come from --config, then --set."""
        from aoanalysis.cli import main
        from aoanalysis.config import Config, save_config

        cfg = Config(model='Guyon2005')
        cfg.set_option('system.fit_mn_max', 20)
        cfg.set_option('output.dump_setup', False)
        save_config(cfg, str(tmp_path / 'run.yaml'))

        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as exc:
            main(['error-budget', '-c', str(tmp_path / 'run.yaml'), '-s', 'system.star_mags=[5,10]'])
        assert exc.value.code == 0
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 3
        assert not os.path.exists(tmp_path / 'aoanalysisSetup.yaml')

    def test_precondition_exit(self, tmp_path, monkeypatch):
        """A routine that fails its preconditions exits with -1."""
        from aoanalysis.cli import main

        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as exc:
            main(['analyze-grid', '--set', 'output.dump_setup=false'])
        assert exc.value.code == -1

    def test_log_file(self, tmp_path, monkeypatch):
        """--log-file receives the package log."""
        from aoanalysis.cli import main

        monkeypatch.chdir(tmp_path)
        log_file = tmp_path / 'run.log'
        with pytest.raises(SystemExit):
            main(['analyze-grid', '--log-file', str(log_file)])
        assert 'grid_dir' in log_file.read_text()
