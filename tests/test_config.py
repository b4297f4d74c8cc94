import pytest

from navsim.config import DEFAULT_CONFIG, Bucket, EngineConfig, Fund
from navsim.results import EngineError, Failed, Insufficient, InsufficientDataError, Ok, PreconditionError, returns_outcome


def test_from_env_overrides_defaults(monkeypatch):
    monkeypatch.setenv("NAVSIM_XIRR_TOLERANCE", "1e-9")
    monkeypatch.setenv("NAVSIM_ROLLING_TOLERANCE_DAYS", "10")
    cfg = EngineConfig.from_env()
    assert cfg.xirr_tolerance == 1e-9
    assert cfg.rolling_tolerance_days == 10
    assert cfg.days_per_year == DEFAULT_CONFIG.days_per_year


def test_from_env_rejects_bad_values(monkeypatch):
    monkeypatch.setenv("NAVSIM_SIP_GRACE_DAYS", "a week")
    with pytest.raises(ValueError, match="NAVSIM_SIP_GRACE_DAYS"):
        EngineConfig.from_env()


def test_bucket_weights_and_inception():
    from datetime import date

    bucket = Bucket([Fund("A", "A", 30, inception_date=date(2010, 1, 1)),
                     Fund("B", "B", 90, inception_date=date(2015, 6, 1))])
    assert bucket.target_weights() == {"A": pytest.approx(0.25), "B": pytest.approx(0.75)}
    assert bucket.earliest_start() == date(2015, 6, 1)
    assert bucket.get("Z") is None


def test_returns_outcome_maps_engine_errors():
    @returns_outcome
    def run(exc):
        if exc is None:
            return 42
        raise exc

    assert run(None) == Ok(42)
    assert run(InsufficientDataError("too short")) == Insufficient("too short")
    assert run(PreconditionError("bad dates")) == Failed("bad dates", "precondition")
    assert run(EngineError("boom")).kind == "error"
    with pytest.raises(KeyError):
        run(KeyError("not an engine error"))
