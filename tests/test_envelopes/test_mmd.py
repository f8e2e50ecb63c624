"""
Tests for the top-level envelope computation, CSV I/O and CLI.
"""

import threading

import numpy as np
import pytest

import fsca_envelopes.envelopes.mmd as mmd_module
from fsca_envelopes.errors import (
    CollaboratorFailure,
    ConfigurationError,
    PrecisionWarning,
)
from fsca_envelopes.envelopes.mmd import (
    EnvelopeResult,
    fs_corana_envmmd,
    load_envelope_csv,
    write_envelope_csv,
)
from fsca_envelopes.envelopes.options import EnvelopeOptions
from fsca_envelopes.tables.bank import EnvelopeInput, SimulationBank


# n = 30, default m0 = 18
TABLE = np.array([
    [4, 3, 2, 1],
    [2, 4, 3, 1],
    [1, 2, 3, 4],
])
N = 30


class Counter:
    """Thread-safe call counter shared by the fake collaborators."""

    def __init__(self):
        self.sampler = 0
        self.fitter = 0
        self.engine = 0
        self._lock = threading.Lock()

    def bump(self, name):
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)


def _collaborators(counter):
    """Sampler, fitter and engine whose diagnostics depend on the sampled table."""

    def sampler(nrow, ncol, row_totals, col_totals, rng):
        counter.bump("sampler")
        table = TABLE.astype(float).copy()
        table[0, 0] = rng.normal()
        return table

    def fitter(table):
        counter.bump("fitter")
        return table

    def engine(x, init):
        counter.bump("engine")
        key = float(x[0, 0])
        mmd_steps = np.arange(init, N)
        ine_steps = np.arange(init, N + 1)
        # Row-dependent spread so rows are not trivially identical
        return {
            "mmd": np.column_stack([mmd_steps, key * (1 + mmd_steps - init)]),
            "ine": np.column_stack([ine_steps, key + ine_steps / N]),
        }

    return sampler, fitter, engine


def _bank_input(keys):
    tables = []
    for k in keys:
        t = TABLE.astype(float).copy()
        t[0, 0] = k
        tables.append(t)
    return EnvelopeInput(table=TABLE, bank=SimulationBank.from_tables(tables))


def _run(data=TABLE, counter=None, **kwargs):
    counter = counter or Counter()
    sampler, fitter, engine = _collaborators(counter)
    kwargs.setdefault("seed", 0)
    return fs_corana_envmmd(data, engine, fitter=fitter, sampler=sampler, **kwargs)


# ============================================================================
# Envelope shape and content
# ============================================================================

class TestEnvelopeShape:
    """Row counts and step columns."""

    def test_default_row_counts(self):
        result = _run(nsimul=40)
        m0 = 18
        assert result.mmd.shape == (N - m0, 4)
        assert result.ine.shape == (N - m0 + 1, 4)

    def test_step_columns(self):
        result = _run(init=25, prob=[0.1, 0.9], nsimul=20)
        np.testing.assert_array_equal(result.mmd[:, 0], np.arange(25, N))
        np.testing.assert_array_equal(result.ine[:, 0], np.arange(25, N + 1))

    def test_unpacks_as_pair(self):
        mmd_env, ine_env = _run(nsimul=10, prob=[0.5])
        assert mmd_env.shape[1] == 2
        assert ine_env.shape[0] == mmd_env.shape[0] + 1

    def test_result_metadata(self):
        result = _run(nsimul=100, prob=[0.05, 0.95])
        assert isinstance(result, EnvelopeResult)
        assert result.prob == (0.05, 0.95)
        np.testing.assert_array_equal(result.sel, [5, 95])
        assert result.params.nsimul == 100

    def test_quantile_columns_ordered(self):
        result = _run(nsimul=200, prob=[0.01, 0.5, 0.99])
        for env in (result.mmd, result.ine):
            assert np.all(env[:, 1] <= env[:, 2])
            assert np.all(env[:, 2] <= env[:, 3])

    def test_user_prob_order_preserved(self):
        result = _run(nsimul=200, prob=[0.99, 0.01])
        assert np.all(result.mmd[:, 1] >= result.mmd[:, 2])

    def test_single_simulation_reproduces_trajectory(self):
        """With nsimul=1 every envelope column is the simulated trajectory."""
        with pytest.warns(PrecisionWarning):
            result = fs_corana_envmmd(
                _bank_input([2.5]), _collaborators(Counter())[2],
                prob=[0.01, 0.5, 0.99],
            )
        expected_mmd = 2.5 * (1 + np.arange(N - 18))
        for k in range(1, 4):
            np.testing.assert_allclose(result.mmd[:, k], expected_mmd)
            np.testing.assert_allclose(result.ine[:, k],
                                       2.5 + np.arange(18, N + 1) / N)

    def test_median_of_four_worked_example(self):
        """Simulated values [3, 1, 4, 2] at each step give median envelope 2."""
        engine = _collaborators(Counter())[2]
        result = fs_corana_envmmd(_bank_input([3, 1, 4, 2]), engine,
                                  prob=[0.5], init=29)
        np.testing.assert_array_equal(result.sel, [2])
        np.testing.assert_allclose(result.mmd, [[29, 2.0]])

    def test_tiny_prob_selects_minimum(self):
        engine = _collaborators(Counter())[2]
        keys = [7, 3, 9, 4, 8, 6, 5, 10, 11, 12]
        result = fs_corana_envmmd(_bank_input(keys), engine,
                                  prob=[0.0001], init=29)
        np.testing.assert_array_equal(result.sel, [1])
        np.testing.assert_allclose(result.mmd[0, 1], 3.0)


# ============================================================================
# Simulation count resolution
# ============================================================================

class TestSimulationCount:
    """Bank size, defaults and overrides."""

    def test_bank_forces_nsimul(self):
        counter = Counter()
        engine = _collaborators(counter)[2]
        result = fs_corana_envmmd(_bank_input([1, 2, 3, 4, 5]), engine,
                                  nsimul=1000)
        assert result.params.nsimul == 5
        assert counter.engine == 5

    def test_bank_mapping_form(self):
        engine = _collaborators(Counter())[2]
        bank = _bank_input([1, 2, 3]).bank
        result = fs_corana_envmmd({"N": TABLE, "NsimStore": bank.store}, engine)
        assert result.params.nsimul == 3

    def test_sampler_called_nsimul_times(self):
        counter = Counter()
        _run(counter=counter, nsimul=17)
        assert counter.sampler == 17
        assert counter.fitter == 17
        assert counter.engine == 17

    def test_options_object_and_keywords_merge(self):
        result = _run(options=EnvelopeOptions(nsimul=30, prob=[0.5]), nsimul=12)
        assert result.params.nsimul == 12
        assert result.prob == (0.5,)

    def test_flat_option_list(self):
        result = _run(options=["nsimul", 8, "prob", [0.25, 0.75]])
        np.testing.assert_array_equal(result.sel, [2, 6])


# ============================================================================
# Errors and warnings
# ============================================================================

class TestErrors:
    """Configuration errors, precision warnings, collaborator failures."""

    def test_collision_warns_and_completes(self):
        with pytest.warns(PrecisionWarning):
            result = _run(nsimul=20, prob=[0.01, 0.02])
        np.testing.assert_array_equal(result.sel, [1, 1])
        np.testing.assert_array_equal(result.mmd[:, 1], result.mmd[:, 2])
        np.testing.assert_array_equal(result.ine[:, 1], result.ine[:, 2])

    def test_unknown_option_no_work(self):
        counter = Counter()
        with pytest.raises(ConfigurationError, match="Unknown option"):
            _run(counter=counter, options={"nsim": 10})
        assert (counter.sampler, counter.fitter, counter.engine) == (0, 0, 0)

    def test_unknown_keyword_no_work(self):
        counter = Counter()
        with pytest.raises(ConfigurationError):
            _run(counter=counter, simulations=10)
        assert counter.engine == 0

    def test_odd_option_list_no_work(self):
        counter = Counter()
        with pytest.raises(ConfigurationError, match="missing"):
            _run(counter=counter, options=["nsimul", 10, "prob"])
        assert (counter.sampler, counter.fitter, counter.engine) == (0, 0, 0)

    @pytest.mark.parametrize("init", [N, N + 1])
    def test_init_too_large(self, init):
        counter = Counter()
        with pytest.raises(ConfigurationError):
            _run(counter=counter, init=init, nsimul=5)
        assert counter.sampler == 0

    def test_missing_fitter_no_work(self):
        counter = Counter()
        sampler, _, engine = _collaborators(counter)
        with pytest.raises(ConfigurationError, match="fitter"):
            fs_corana_envmmd(TABLE, engine, sampler=sampler, nsimul=5)
        assert counter.sampler == 0

    def test_collaborator_failure_no_partial_output(self):
        def engine(x, init):
            raise RuntimeError("forward search diverged")

        with pytest.raises(CollaboratorFailure, match="simulation 0"):
            fs_corana_envmmd(_bank_input([1, 2]), engine)


# ============================================================================
# Parallel runs
# ============================================================================

class TestParallelRuns:
    """Seeded results do not depend on worker count."""

    def test_workers_match_serial(self):
        serial = _run(nsimul=30, seed=99)
        parallel = _run(nsimul=30, seed=99, workers=4)
        np.testing.assert_array_equal(serial.mmd, parallel.mmd)
        np.testing.assert_array_equal(serial.ine, parallel.ine)


# ============================================================================
# CSV I/O
# ============================================================================

class TestCSVIO:
    """Tests for envelope CSV files."""

    def test_roundtrip(self, tmp_path):
        result = _run(nsimul=20, prob=[0.05, 0.5, 0.95])
        path = tmp_path / "mmd.csv"
        write_envelope_csv(path, result.mmd, result.prob)
        env, prob = load_envelope_csv(path)
        np.testing.assert_allclose(env, result.mmd, rtol=1e-9)
        assert prob == [0.05, 0.5, 0.95]

    def test_header(self, tmp_path):
        path = tmp_path / "env.csv"
        write_envelope_csv(path, np.array([[10, 1.0, 2.0]]), [0.01, 0.99])
        with open(path) as f:
            assert f.readline().strip() == "step,p0.01,p0.99"

    def test_header_keeps_full_precision(self, tmp_path):
        path = tmp_path / "env.csv"
        prob = [0.1234567, 1 / 3]
        write_envelope_csv(path, np.array([[10, 1.0, 2.0]]), prob)
        _, loaded = load_envelope_csv(path)
        assert loaded == prob

    def test_header_numpy_floats(self, tmp_path):
        path = tmp_path / "env.csv"
        write_envelope_csv(path, np.array([[10, 1.0]]), np.array([0.025]))
        with open(path) as f:
            assert f.readline().strip() == "step,p0.025"

    def test_column_count_checked(self, tmp_path):
        with pytest.raises(ValueError, match="columns"):
            write_envelope_csv(tmp_path / "x.csv", np.ones((3, 2)), [0.1, 0.9])

    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "env.csv"
        write_envelope_csv(path, np.array([[1, 0.5]]), [0.5])
        assert path.exists()

    def test_rejects_foreign_csv(self, tmp_path):
        path = tmp_path / "other.csv"
        path.write_text("a,b\n1,2\n")
        with pytest.raises(ValueError, match="not an envelope CSV"):
            load_envelope_csv(path)


# ============================================================================
# CLI
# ============================================================================

class TestCLI:
    """Tests for the command-line entry point."""

    def _patch_collaborators(self, monkeypatch, counter):
        sampler, fitter, engine = _collaborators(counter)
        lookup = {"fake:engine": engine, "fake:fitter": fitter}
        monkeypatch.setattr(mmd_module, "load_callable", lambda path: lookup[path])
        return sampler

    def test_writes_envelopes(self, tmp_path, monkeypatch):
        counter = Counter()
        self._patch_collaborators(monkeypatch, counter)
        table_path = tmp_path / "table.csv"
        np.savetxt(table_path, TABLE, delimiter=",", fmt="%d")
        out_mmd = tmp_path / "mmd.csv"
        out_ine = tmp_path / "ine.csv"

        mmd_module.main([
            "--table", str(table_path),
            "--engine", "fake:engine",
            "--fitter", "fake:fitter",
            "--prob", "0.1", "0.9",
            "--nsimul", "6",
            "--init", "27",
            "--seed", "1",
            "--output-mmd", str(out_mmd),
            "--output-ine", str(out_ine),
        ])

        env, prob = load_envelope_csv(out_mmd)
        assert prob == [0.1, 0.9]
        np.testing.assert_array_equal(env[:, 0], [27, 28, 29])
        env_ine, _ = load_envelope_csv(out_ine)
        assert env_ine.shape == (4, 3)
        assert counter.fitter == 6

    def test_bank_file(self, tmp_path, monkeypatch):
        counter = Counter()
        self._patch_collaborators(monkeypatch, counter)
        table_path = tmp_path / "table.csv"
        np.savetxt(table_path, TABLE, delimiter=",", fmt="%d")
        bank_path = tmp_path / "bank.npy"
        np.save(bank_path, _bank_input([1, 2, 3, 4]).bank.store)
        out_mmd = tmp_path / "mmd.csv"

        mmd_module.main([
            "--table", str(table_path),
            "--bank", str(bank_path),
            "--engine", "fake:engine",
            "--prob", "0.5",
            "--init", "28",
            "--output-mmd", str(out_mmd),
            "--output-ine", str(tmp_path / "ine.csv"),
        ])

        env, _ = load_envelope_csv(out_mmd)
        assert env.shape == (2, 2)
        assert counter.engine == 4
        assert counter.fitter == 0

    def test_configuration_error_exits(self, tmp_path, monkeypatch, capsys):
        self._patch_collaborators(monkeypatch, Counter())
        table_path = tmp_path / "table.csv"
        np.savetxt(table_path, TABLE, delimiter=",", fmt="%d")

        with pytest.raises(SystemExit) as excinfo:
            mmd_module.main([
                "--table", str(table_path),
                "--engine", "fake:engine",
                "--fitter", "fake:fitter",
                "--init", "30",
                "--output-mmd", str(tmp_path / "m.csv"),
                "--output-ine", str(tmp_path / "i.csv"),
            ])
        assert excinfo.value.code == 1
        assert "ERROR" in capsys.readouterr().err

    def test_non_numeric_table_exits(self, tmp_path, monkeypatch, capsys):
        self._patch_collaborators(monkeypatch, Counter())
        table_path = tmp_path / "table.csv"
        table_path.write_text("a,b,c\nx,y,z\n")

        with pytest.raises(SystemExit) as excinfo:
            mmd_module.main([
                "--table", str(table_path),
                "--engine", "fake:engine",
                "--fitter", "fake:fitter",
                "--output-mmd", str(tmp_path / "m.csv"),
                "--output-ine", str(tmp_path / "i.csv"),
            ])
        assert excinfo.value.code == 1
        err = capsys.readouterr().err
        assert "ERROR: Cannot read table" in err
        assert not (tmp_path / "m.csv").exists()
