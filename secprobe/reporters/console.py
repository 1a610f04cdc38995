from colorama import init as colorama_init, Fore, Style
from datetime import datetime
colorama_init(autoreset=True)

_SEV_COLORS = {
    "critical": Fore.RED + Style.BRIGHT,
    "high": Fore.RED,
    "medium": Fore.YELLOW,
    "low": Fore.GREEN,
}


class Log:
    def __init__(self, verbose: int = 1):
        self.verbose = verbose
        self.PAY = Fore.MAGENTA

    def _time(self):
        return datetime.now().strftime("[%H:%M:%S]")

    def _fmt(self, level: str, color: str):
        return f"{self._time()} {color}[{level}]{Style.RESET_ALL}"

    def info(self, msg: str):
        if self.verbose >= 1:
            print(f"{self._fmt('INFO', Fore.CYAN)} {msg}")

    def warn(self, msg: str):
        if self.verbose >= 0:
            print(f"{self._fmt('WARNING', Fore.YELLOW)} {msg}")

    def ok(self, msg: str):
        print(f"{self._fmt('SECURE', Fore.GREEN)} {msg}")

    def fail(self, msg: str):
        print(f"{self._fmt('FAIL', Fore.RED)} {msg}")

    def debug(self, msg: str):
        if self.verbose >= 2:
            print(f"{self._fmt('DEBUG', Fore.MAGENTA)} {msg}")

    def finding(self, finding):
        sev = finding.severity.value
        sev_col = _SEV_COLORS.get(sev, Fore.WHITE)
        label = "VULNERABILITY" if finding.kind.value == "policy-violation" else "SUSPECT"
        pay = ""
        if finding.payload is not None:
            pay = f" = {self.PAY}{finding.payload.value}{Style.RESET_ALL}"
        print(f"{self._fmt(label, sev_col)} {finding.title} "
              f"@ {finding.target_description}{pay} "
              f"{Style.DIM}({sev}, {finding.confidence}){Style.RESET_ALL}")
        if finding.evidence and self.verbose >= 2:
            print(f"{' ' * 11}{Style.DIM}evidence: {finding.evidence[:200]}{Style.RESET_ALL}")

    def summary(self, findings):
        """One line per severity, highest first; ambiguous findings counted apart."""
        if not findings:
            return
        print(f"{Style.BRIGHT}{'─' * 11} summary {'─' * 11}{Style.RESET_ALL}")
        for sev in ("critical", "high", "medium", "low", "info"):
            hits = [f for f in findings if f.severity.value == sev]
            if not hits:
                continue
            suspect = sum(1 for f in hits if f.kind.value != "policy-violation")
            extra = f" {Style.DIM}({suspect} suspect){Style.RESET_ALL}" if suspect else ""
            print(f"  {_SEV_COLORS.get(sev, Fore.WHITE)}{sev.upper():<9}{Style.RESET_ALL}"
                  f" {len(hits)}{extra}")
