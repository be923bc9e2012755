import pytest
from PySide6.QtCore import QCoreApplication

from scholar_quiz.core.services.session_timer import QtSessionTimer


@pytest.fixture(scope="module")
def qt_app():
    return QCoreApplication.instance() or QCoreApplication([])


def test_start_and_stop_toggle_the_timer(qt_app):
    timer = QtSessionTimer(interval_ms=10)

    timer.start(lambda: None)
    assert timer.is_active()

    timer.stop()
    assert not timer.is_active()


def test_timer_invokes_callback(qt_app):
    timer = QtSessionTimer(interval_ms=5)
    ticks = []

    def on_tick():
        ticks.append(1)
        if len(ticks) == 3:
            timer.stop()
            qt_app.quit()

    timer.start(on_tick)
    qt_app.exec()

    assert len(ticks) == 3
    assert not timer.is_active()
