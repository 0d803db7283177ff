import logging

from tidyhome.errors import Conflict, NotImplementedYet, ServiceError
from tidyhome.logging_setup import setup_logging


def test_setup_logging_installs_one_handler():
    root = logging.getLogger()
    setup_logging("DEBUG")
    setup_logging(logging.WARNING)
    ours = [h for h in root.handlers if getattr(h, "_tidyhome", False)]
    assert len(ours) == 1
    assert root.level == logging.WARNING
    root.removeHandler(ours[0])


def test_unknown_level_falls_back_to_info():
    root = logging.getLogger()
    setup_logging("chatty")
    assert root.level == logging.INFO
    for handler in [h for h in root.handlers if getattr(h, "_tidyhome", False)]:
        root.removeHandler(handler)


def test_service_error_payloads():
    assert Conflict("taken", taskCount=2).to_payload() == {"error": "taken", "taskCount": 2}
    assert NotImplementedYet("later").status_code == 501
    assert ServiceError("boom", status_code=418).status_code == 418
