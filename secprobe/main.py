import argparse
import os
import sys

from secprobe.core.config import load_config
from secprobe.core.driver import browser_session
from secprobe.core.engine import GROUPS, ProbeEngine
from secprobe.core.errors import CollaboratorUnavailable
from secprobe.core.scanner import SQLI_RULES, XSS_RULES, ScannerController, ZapTransport
from secprobe.reporters.console import Log
from secprobe.reporters.findings import Reporter, flush_findings

SCAN_POLICIES = {
    "full": None,
    "sqli": SQLI_RULES,
    "xss": XSS_RULES,
    "injection": SQLI_RULES + XSS_RULES,
}


def run_scanner(cfg, reporter: Reporter, log: Log, policy: str, report_dir: str) -> None:
    transport = ZapTransport(cfg.scanner, logger=log)
    try:
        ctl = ScannerController(transport, cfg.scanner, logger=log)
        version = ctl.version()
        if version is None:
            log.warn(f"ZAP not reachable at {cfg.scanner.base_url}; skipping scanner")
            return
        log.info(f"ZAP {version} at {cfg.scanner.base_url}")

        for finding in ctl.scan(cfg.target.base_url, rule_ids=SCAN_POLICIES[policy]):
            reporter.record_finding(finding)

        html = ctl.report("html")
        if html:
            report_dir = report_dir or "."
            os.makedirs(report_dir, exist_ok=True)
            path = os.path.join(report_dir, "zap-report.html")
            with open(path, 'w', encoding='utf-8') as f:
                f.write(html)
            reporter.attach_artifact(path)
    finally:
        transport.close()


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Browser-driven web security probes")
    p.add_argument("--config", help="Properties file (e.g. config.properties)")
    p.add_argument("--target", help="Base URL, overrides base.url")
    p.add_argument("--probes", default=",".join(GROUPS),
                   help=f"Comma list of: {', '.join(GROUPS + ('scanner',))}")
    p.add_argument("--payloads", action="append", default=[], metavar="FILE",
                   help="Extra payload file (repeatable)")
    p.add_argument("--report", default="reports/findings.json",
                   help="JSON findings report")
    p.add_argument("--scan-policy", default="full", choices=sorted(SCAN_POLICIES))
    p.add_argument("--headless", action="store_true")
    p.add_argument("--screenshots", metavar="DIR",
                   help="Save a screenshot per violation into DIR, overrides probe.screenshot.dir")
    p.add_argument("-v", "--verbose", action="count", default=1,
                   help="-v, -vv")
    args = p.parse_args(argv)

    groups = [g.strip() for g in args.probes.split(",") if g.strip()]
    unknown = [g for g in groups if g not in GROUPS and g != "scanner"]
    if unknown:
        p.error(f"unknown probe group(s): {', '.join(unknown)}")

    log = Log(verbose=args.verbose)
    cfg = load_config(args.config, logger=log)
    if args.target:
        cfg.target.base_url = args.target
    if args.headless:
        cfg.browser.headless = True
    if args.screenshots:
        cfg.probes.screenshot_dir = args.screenshots
    if args.payloads:
        cfg.payload_files += tuple(args.payloads)

    for key, value in cfg.summary().items():
        log.debug(f"{key}: {value}")

    reporter = Reporter(logger=log)
    probe_groups = [g for g in groups if g != "scanner"]
    if probe_groups:
        try:
            with browser_session(cfg.browser, logger=log) as driver:
                engine = ProbeEngine(driver, reporter, cfg, logger=log)
                engine.run(probe_groups)
        except CollaboratorUnavailable as e:
            log.fail(f"Browser unavailable: {e}")

    if "scanner" in groups or cfg.scanner.enabled:
        run_scanner(cfg, reporter, log, args.scan_policy, os.path.dirname(args.report))

    flush_findings(reporter.log, args.report, logger=log)

    log.summary(reporter.log.findings)
    violations = reporter.log.violations()
    if violations:
        log.fail(f"{len(violations)} vulnerabilities found")
        return 1
    log.ok("No vulnerabilities found")
    return 0


if __name__ == "__main__":
    sys.exit(main())
