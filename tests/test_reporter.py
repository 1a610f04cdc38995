import json
import threading
from contextlib import contextmanager

import pytest
from playwright.sync_api import Error as PlaywrightError

from secprobe import main as cli
from secprobe.core.driver import PlaywrightDriver, SessionRegistry
from secprobe.core.errors import CollaboratorUnavailable
from secprobe.core.models import Finding, FindingKind, Payload, PayloadCategory, Severity
from secprobe.reporters.console import Log
from secprobe.reporters.findings import FindingsLog, Reporter, flush_findings


def _finding(title="SQL Injection", kind=FindingKind.POLICY_VIOLATION):
    return Finding(kind, title, Severity.HIGH, "/search #search (search)", "SQL syntax",
                   payload=Payload(PayloadCategory.SQLI_BASIC, "'"))


class TestReporter:

    def test_records_findings_and_notes(self, capsys):
        rep = Reporter(logger=Log(verbose=2), log=FindingsLog("w1"))
        rep.record_finding(_finding())
        rep.record_info("probing /search")
        rep.record_warning("no result locator")
        rep.record_pass("No findings for DOM XSS")
        rep.attach_artifact("reports/zap-report.html")

        assert len(rep.log) == 1
        assert [lvl for lvl, _ in rep.log.notes] == ["info", "warning", "pass"]
        assert rep.log.artifacts == ["reports/zap-report.html"]
        out = capsys.readouterr().out
        assert "VULNERABILITY" in out
        assert "evidence: SQL syntax" in out

    def test_console_summary(self, capsys):
        Log().summary([_finding(), _finding("Maybe", FindingKind.CLASSIFICATION_AMBIGUOUS)])
        out = capsys.readouterr().out
        assert "HIGH" in out
        assert "(1 suspect)" in out
        Log().summary([])
        assert capsys.readouterr().out == ""

    def test_log_is_append_only_view(self):
        log = FindingsLog("w1")
        log.append(_finding())
        log.append(_finding("Maybe", FindingKind.CLASSIFICATION_AMBIGUOUS))
        assert isinstance(log.findings, tuple)
        assert [f.title for f in log.violations()] == ["SQL Injection"]
        assert [f.title for f in log] == ["SQL Injection", "Maybe"]


class TestFlush:

    def test_workers_merge_into_one_report(self, tmp_path):
        path = str(tmp_path / "out" / "findings.json")
        a, b = FindingsLog("a", run_id="r1"), FindingsLog("b", run_id="r1")
        a.append(_finding())
        b.append(_finding("Maybe", FindingKind.CLASSIFICATION_AMBIGUOUS))
        b.artifacts.append("shot.png")

        assert flush_findings(a, path) == 1
        assert flush_findings(b, path) == 2

        with open(path, encoding="utf-8") as f:
            report = json.load(f)
        assert report["total"] == 2
        assert report["violations"] == 1
        assert [e["worker"] for e in report["findings"]] == ["a", "b"]
        assert report["findings"][0]["payload"] == "'"
        assert report["artifacts"] == ["shot.png"]

    def test_parallel_flushes(self, tmp_path):
        path = str(tmp_path / "findings.json")
        logs = []
        for i in range(8):
            log = FindingsLog(f"w{i}", run_id="r1")
            log.append(_finding(f"F{i}"))
            logs.append(log)
        threads = [threading.Thread(target=flush_findings, args=(log, path)) for log in logs]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        with open(path, encoding="utf-8") as f:
            report = json.load(f)
        assert sorted(e["title"] for e in report["findings"]) == [f"F{i}" for i in range(8)]

    def test_new_run_replaces_old_report(self, tmp_path):
        path = str(tmp_path / "findings.json")
        first, second = FindingsLog("w"), FindingsLog("w")
        first.append(_finding("Yesterday"))
        second.append(_finding("Today"))

        flush_findings(first, path)
        assert flush_findings(second, path) == 1
        with open(path, encoding="utf-8") as f:
            report = json.load(f)
        assert report["run"] == second.run_id
        assert [e["title"] for e in report["findings"]] == ["Today"]

    def test_corrupt_report_is_replaced(self, tmp_path):
        path = tmp_path / "findings.json"
        path.write_text("{not json", encoding="utf-8")
        log = FindingsLog("w")
        log.append(_finding())
        assert flush_findings(log, str(path)) == 1


class Closable:
    def __init__(self, fail=False):
        self.closed = False
        self.fail = fail

    def close(self):
        self.closed = True
        if self.fail:
            raise RuntimeError("already gone")


class TestSessionRegistry:

    def test_one_driver_per_identity(self):
        who = {"id": 1}
        made = []

        def factory():
            made.append(Closable())
            return made[-1]

        reg = SessionRegistry(factory, identity=lambda: who["id"])
        first = reg.acquire()
        assert reg.acquire() is first
        who["id"] = 2
        second = reg.acquire()
        assert second is not first
        assert len(reg) == 2

        reg.release()
        assert second.closed and not first.closed
        assert len(reg) == 1

    def test_close_all_survives_close_errors(self):
        drivers = iter([Closable(fail=True), Closable()])
        who = {"id": 0}
        with SessionRegistry(lambda: next(drivers), identity=lambda: who["id"]) as reg:
            bad = reg.acquire()
            who["id"] = 1
            good = reg.acquire()
        assert bad.closed and good.closed
        assert len(reg) == 0


class FakeDialog:
    message = "XSS"

    def __init__(self):
        self.accepted = False

    def accept(self):
        self.accepted = True


class FakeElement:
    def __init__(self, detached=False):
        self.detached = detached

    def inner_text(self):
        return ""

    def evaluate(self, src):
        return {"id": "search"}

    def is_visible(self):
        if self.detached:
            raise PlaywrightError("Element is not attached to the DOM")
        return True


class FakeLocator:
    def __init__(self, element):
        self.first = element

    def count(self):
        return 1


class FakePage:
    def __init__(self, element=None):
        self.handlers = {}
        self.url = "about:blank"
        self.element = element or FakeElement()

    def locator(self, selector):
        return FakeLocator(self.element)

    def on(self, event, handler):
        self.handlers[event] = handler

    def goto(self, url):
        raise PlaywrightError("net::ERR_CONNECTION_REFUSED")

    def evaluate(self, src, arg=None):
        return {"token": "abc"} if arg == "localStorage" else {}


class TestPlaywrightDriver:

    def test_dialogs_are_accepted_and_remembered(self):
        page = FakePage()
        drv = PlaywrightDriver(page)
        dialog = FakeDialog()
        page.handlers["dialog"](dialog)

        assert dialog.accepted
        assert drv.dialog_present()
        assert drv.dialog_text() == "XSS"
        drv.accept_dialog()
        assert not drv.dialog_present()

    def test_browser_errors_become_unavailable(self):
        drv = PlaywrightDriver(FakePage())
        with pytest.raises(CollaboratorUnavailable) as exc:
            drv.navigate("http://app.test/")
        assert exc.value.collaborator == "browser"

    def test_find_field_reads_visibility(self):
        field = PlaywrightDriver(FakePage()).find_field("#search")
        assert field.visible
        assert field.attributes == {"id": "search"}

    def test_detached_element_becomes_unavailable(self):
        drv = PlaywrightDriver(FakePage(FakeElement(detached=True)))
        with pytest.raises(CollaboratorUnavailable) as exc:
            drv.find_field("#search")
        assert "read #search" in exc.value.detail

    def test_execute_script_passes_argument(self):
        drv = PlaywrightDriver(FakePage())
        assert drv.execute_script("name => window[name]", "localStorage") == {"token": "abc"}

    def test_close_runs_once(self):
        calls = []
        drv = PlaywrightDriver(FakePage(), on_close=lambda: calls.append(1))
        drv.close()
        drv.close()
        assert calls == [1]


class TestCli:

    def test_unknown_group(self):
        with pytest.raises(SystemExit):
            cli.main(["--probes", "sqli,bogus"])

    def test_browser_unavailable_still_writes_report(self, tmp_path, monkeypatch):
        @contextmanager
        def no_browser(config, logger=None):
            raise CollaboratorUnavailable("browser", "executable missing")
            yield

        monkeypatch.setattr(cli, "browser_session", no_browser)
        monkeypatch.delenv("SECPROBE_SCANNER__ENABLED", raising=False)
        report = tmp_path / "findings.json"

        assert cli.main(["--probes", "exposure", "--report", str(report)]) == 0
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["total"] == 0

    def test_exit_code_follows_violations(self, tmp_path, monkeypatch):
        from conftest import BASE, FakeDriver

        drv = FakeDriver()
        drv.pages["/"] = "<html><!-- TODO: remove password=hunter2 --></html>"

        @contextmanager
        def fake_browser(config, logger=None):
            yield drv

        monkeypatch.setattr(cli, "browser_session", fake_browser)
        monkeypatch.delenv("SECPROBE_SCANNER__ENABLED", raising=False)
        report = tmp_path / "findings.json"

        rc = cli.main(["--probes", "exposure", "--target", BASE, "--report", str(report)])
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["violations"] >= 1
        assert rc == 1
