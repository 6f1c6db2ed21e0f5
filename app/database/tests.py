"""
Tests para la sesión por request (get_db)
"""

import logging
import pytest

from app.common.exceptions import NotDraftError
from app.database.database import get_db


class TestGetDb:
    """El error del endpoint vuelve a través de la dependencia"""

    def test_expected_errors_are_not_logged_as_database_errors(self, caplog):
        dependency = get_db()
        next(dependency)

        with caplog.at_level(logging.DEBUG):
            with pytest.raises(NotDraftError):
                dependency.throw(NotDraftError())

        assert [r for r in caplog.records if r.levelno >= logging.ERROR] == []

    def test_session_is_closed_after_request(self):
        dependency = get_db()
        db = next(dependency)

        with pytest.raises(StopIteration):
            next(dependency)

        assert not db.in_transaction()
