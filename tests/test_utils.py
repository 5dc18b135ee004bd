import logging
from decimal import Decimal

from ukpayroll.core.config import settings
from ukpayroll.core.utils import apply_rate, prorate, round_half_up, setup_logging

def test_setup_logging_idempotent(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "AUDIT_LOG_PATH", str(tmp_path))
    logger1 = setup_logging("tmptest")
    handlers_before = len(logger1.handlers)
    logger2 = setup_logging("tmptest")
    handlers_after = len(logger2.handlers)
    assert handlers_before == handlers_after
    assert logger2.name == "ukpayroll.tmptest"
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger2.handlers)

def test_round_half_away_from_zero():
    assert round_half_up(Decimal("4474.5")) == 4475
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("-2.5")) == -3
    assert round_half_up(Decimal("-39583.33")) == -39583

def test_apply_rate_and_prorate():
    assert apply_rate(195250, Decimal("0.20")) == 39050
    assert apply_rate(23550, Decimal("0.19")) == 4475
    assert prorate(5027000, 1, 12) == 418917
    assert prorate(1257000, 1, 52) == 24173

