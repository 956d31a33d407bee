"""Connectivity and dependency checks run before anything is changed."""
from typing import Dict

from ..errors import TaskError
from ..models import ALL, HostSpec
from ..pipeline import RemoteTask, Task, TaskModule

NODE_PRECHECK = 'node_precheck'

PRECHECK_TOOLS = (
    'sudo', 'curl', 'openssl', 'ebtables', 'socat', 'ipset', 'conntrack',
    'chronyd', 'docker', 'showmount', 'rbd', 'glusterfs',
)
# kubeadm refuses to set up a node without these
REQUIRED_TOOLS = ('sudo', 'curl', 'openssl', 'ebtables', 'socat', 'conntrack')


class Greetings(RemoteTask):
    roles = (ALL,)

    def run_on(self, host: HostSpec) -> str:
        output = self.runtime.runner.run(host, 'echo "Greetings, KubeKey!"')
        self.host_log(host).info(output)
        return output


class NodePreCheck(RemoteTask):
    """Looks up every tool in PRECHECK_TOOLS on each host.

    The per-host report (tool -> path, empty when missing, plus ``time``) is
    stored in the module cache under ``node_precheck``.
    """

    roles = (ALL,)

    def run_on(self, host: HostSpec) -> Dict[str, str]:
        runner = self.runtime.runner
        report = {}
        for tool in PRECHECK_TOOLS:
            report[tool] = runner.run(host, f"command -v {tool}", check=False)
        report['time'] = runner.run(host, 'date +"%Z %H:%M:%S"', check=False)
        return report

    def run(self) -> None:
        try:
            super().run()
        finally:
            self.cache.set(NODE_PRECHECK, dict(self.results))


class CheckPreCheckResults(Task):
    def run(self) -> None:
        reports, found = self.cache.get(NODE_PRECHECK)
        if not found:
            raise TaskError("No node precheck results were recorded")

        missing = {}
        for host in self.runtime.k8s_hosts:
            report = reports.get(host.name, {})
            self.log.info(f"{host.name}: " + ', '.join(
                f"{tool}={'y' if report.get(tool) else ''}" for tool in PRECHECK_TOOLS) +
                f", time={report.get('time', '')}")
            lacking = [tool for tool in REQUIRED_TOOLS if not report.get(tool)]
            if lacking:
                missing[host.name] = lacking

        if missing:
            details = '; '.join(f"{name}: {', '.join(tools)}" for name, tools in sorted(missing.items()))
            raise TaskError(f"Required tools are missing: {details}")


class GreetingsModule(TaskModule):
    module_name = 'GreetingsModule'

    def init(self) -> None:
        self.tasks = [Greetings()]


class NodePreCheckModule(TaskModule):
    module_name = 'NodePreCheckModule'

    def is_skip(self) -> bool:
        return self.runtime.flags.skip_check

    def init(self) -> None:
        self.tasks = [NodePreCheck(), CheckPreCheckResults()]
