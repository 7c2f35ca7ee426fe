from __future__ import annotations

from datetime import UTC, datetime

from host_probe.models import ProbeReport


def _login_time(value: int) -> str:
    return datetime.fromtimestamp(value, tz=UTC).isoformat()


def render_text(report: ProbeReport) -> str:
    lines: list[str] = []
    if report.container is not None:
        lines.append(f"isContainer: {report.container.is_container}")
        lines.extend(f"\treason={reason}" for reason in report.container.reasons)

    if report.private_keys is not None:
        lines.append("ssh keys:")
        lines.extend(f"\tfile={key.path} encrypted={key.encrypted}" for key in report.private_keys)

    if report.antivirus is not None:
        lines.append("AV:")
        for result in report.antivirus:
            procs = ", ".join(f"{proc.name}({proc.pid})" for proc in result.processes)
            mods = ", ".join(module.name for module in result.kernel_modules)
            lines.append(f"\tname={result.name} files={result.paths} procs=[{procs}] modules=[{mods}]")

    if report.connections is not None:
        lines.append("connections:")
        for conn in report.connections:
            lines.append(
                f"\t{conn.protocol}/{conn.family}: {conn.local_ip}:{conn.local_port} <> "
                f"{conn.remote_ip}:{conn.remote_port}"
            )

    if report.watch_rules is not None or report.watch_rules_error is not None:
        lines.append("Watches:")
        if report.watch_rules_error is not None:
            lines.append(f"\terror={report.watch_rules_error}")
        lines.extend(f"\tpath={rule.path} action={rule.action}" for rule in report.watch_rules or [])

    if report.neighbors is not None:
        lines.append("ARP table:")
        lines.extend(f"\tmac={entry.mac} ip={entry.ip} dev={entry.device}" for entry in report.neighbors)

    if report.logins is not None:
        lines.append("Logged in:")
        for login in report.logins:
            lines.append(
                f"\tuser={login.user} host={login.host} line={login.line} pid={login.pid} "
                f"login_time={login.login_time} ({_login_time(login.login_time)})"
            )
    return "\n".join(lines)
