"""Base operating-system preparation on every host."""
from typing import Sequence

from ..models import ALL, HostSpec
from ..pipeline import RemoteTask, TaskModule

HOSTS_FILE = '/etc/hosts'
HOSTS_BEGIN = '# kubekey hosts BEGIN'
HOSTS_END = '# kubekey hosts END'


def sync_hosts_command(lines: Sequence[str], hosts_file: str = HOSTS_FILE) -> str:
    """Shell command replacing the managed block of `hosts_file` with `lines`.

    Running it twice leaves the file as running it once.
    """
    block = '\n'.join([HOSTS_BEGIN, *lines, HOSTS_END])
    return (
        f"sed -i '/^{HOSTS_BEGIN}$/,/^{HOSTS_END}$/d' {hosts_file} && "
        f"cat >> {hosts_file} <<'EOF'\n{block}\nEOF"
    )


class InitWorkDir(RemoteTask):
    roles = (ALL,)

    def run_on(self, host: HostSpec) -> None:
        work_dir = self.runtime.remote_work_dir
        self.runtime.runner.run(host, f"mkdir -p {work_dir} && chmod 700 {work_dir}", sudo=True)


class SyncHosts(RemoteTask):
    roles = (ALL,)

    def run_on(self, host: HostSpec) -> None:
        self.runtime.runner.run(host, sync_hosts_command(self.runtime.cluster_hosts), sudo=True)
        self.host_log(host).debug(f"Synced {len(self.runtime.cluster_hosts)} entries into {HOSTS_FILE}")


class InitOSModule(TaskModule):
    module_name = 'InitOSModule'

    def init(self) -> None:
        self.tasks = [InitWorkDir(), SyncHosts()]
