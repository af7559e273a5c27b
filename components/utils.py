#!/usr/bin/env python

import os
import re
import grp
import pwd
import shlex
import tempfile
import subprocess
from collections import namedtuple

from jinja2 import Environment, FunctionLoader

from cloudify import ctx
from cloudify.exceptions import NonRecoverableError


OS_RELEASE_PATH = '/etc/os-release'
INIT_D_PATH = '/etc/init.d'
UPSTART_PATH = '/etc/init'
SYSTEMD_PATH = '/etc/systemd/system'
RUNIT_SV_PATH = '/etc/sv'
RUNIT_SERVICE_PATH = '/etc/service'
BASE_LOG_DIR = '/var/log'

# os-release IDs mapped to the platform family they are managed as
PLATFORM_FAMILIES = {
    'debian': 'debian',
    'ubuntu': 'debian',
    'linuxmint': 'debian',
    'raspbian': 'debian',
    'rhel': 'rhel',
    'centos': 'rhel',
    'redhat': 'rhel',
    'ol': 'rhel',
    'scientific': 'rhel',
    'amzn': 'rhel',
    'rocky': 'rhel',
    'almalinux': 'rhel',
    'fedora': 'fedora',
}

Platform = namedtuple('Platform', 'family version')


def fatal(message):
    """Log `message` and abandon the running operation."""
    ctx.logger.error(message)
    raise NonRecoverableError(message)


def run(command, retries=0, stdin='', ignore_failures=False,
        shell=False, env=None):
    if isinstance(command, str) and not shell:
        command = shlex.split(command)
    ctx.logger.debug('Running: {0}'.format(command))
    proc = subprocess.Popen(command, stdin=subprocess.PIPE,
                            stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                            shell=shell, env=env, universal_newlines=True)
    proc.aggr_stdout, proc.aggr_stderr = proc.communicate(input=stdin)
    if proc.returncode != 0:
        command_str = command if shell else ' '.join(command)
        if retries:
            ctx.logger.warn('Failed running command: {0}. Retrying. '
                            '({1} left)'.format(command_str, retries))
            proc = run(command, retries - 1, stdin, ignore_failures,
                       shell, env)
        elif not ignore_failures:
            msg = 'Failed running command: {0} ({1}).'.format(
                command_str, proc.aggr_stderr)
            raise RuntimeError(msg)
    return proc


def sudo(command, *args, **kwargs):
    if isinstance(command, str):
        command = shlex.split(command)
    if 'env' in kwargs:
        command = ['sudo', '-E'] + command
    else:
        command = ['sudo'] + command
    return run(command, *args, **kwargs)


def sudo_write_to_file(contents, destination):
    fd, path = tempfile.mkstemp()
    os.close(fd)
    with open(path, 'w') as f:
        f.write(contents)
    return move(path, destination)


def get_file_content(file_path):
    """Return the content of `file_path`, or None if it does not exist.

    Files the current user may not read (e.g. under /etc/sv) are read
    through sudo.
    """
    if not os.path.isfile(file_path):
        return None
    try:
        with open(file_path) as f:
            return f.read()
    except IOError:
        return sudo(['cat', file_path]).aggr_stdout


def mkdir(dir, use_sudo=True):
    """Create `dir` and its parents. Return True if it was created."""
    if os.path.isdir(dir):
        return False
    ctx.logger.debug('Creating Directory: {0}'.format(dir))
    cmd = ['mkdir', '-p', dir]
    if use_sudo:
        sudo(cmd)
    else:
        run(cmd)
    return True


# idempotent move operation
def move(source, destination):
    copy(source, destination)
    remove(source)


def copy(source, destination):
    destination_dir = os.path.dirname(destination)
    if not os.path.exists(destination_dir):
        ctx.logger.debug(
            'Path does not exist: {0}. Creating it...'.format(
                destination_dir))
        sudo(['mkdir', '-p', destination_dir])
    sudo(['cp', '-rp', source, destination])


def remove(path, ignore_failure=False):
    ctx.logger.debug('Removing {0}...'.format(path))
    sudo(['rm', '-rf', path], ignore_failures=ignore_failure)


def chmod(mode, path, recursive=False):
    ctx.logger.debug('chmoding {0}: {1}'.format(path, mode))
    command = ['chmod']
    if recursive:
        command.append('-R')
    command += [mode, path]
    sudo(command)


def chown(user, group, path, recursive=False):
    ctx.logger.debug('chowning {0} by {1}:{2}...'.format(
        path, user, group))
    command = ['chown']
    if recursive:
        command.append('-R')
    command += ['{0}:{1}'.format(user, group), path]
    sudo(command)


def ln(source, target, params=None):
    ctx.logger.debug('Linking {0} to {1} with params {2}'.format(
        source, target, params))
    command = ['ln']
    if params:
        command.append(params)
    command.append(source)
    command.append(target)
    sudo(command)


def create_service_user(user, group, home):
    """Creates a user.

    It will not create the home dir for it and assume that it already exists.
    This user will only be created if it didn't already exist.
    Returns True if the user was created.
    """
    ctx.logger.info('Checking whether user {0} exists...'.format(user))
    try:
        pwd.getpwnam(user)
        ctx.logger.debug('User {0} already exists...'.format(user))
        return False
    except KeyError:
        ctx.logger.info('Creating group {group} if it does not exist'.format(
            group=group,
        ))
        # --force in groupadd causes it to return true if the group exists.
        sudo(['groupadd', '--force', group])

        ctx.logger.info('Creating user {0}, home: {1}...'.format(
            user, home))
        sudo([
            'useradd',
            '--shell', '/sbin/nologin',
            '--home-dir', home, '--no-create-home',
            '--system',
            '--no-user-group',
            '--gid', group,
            user,
        ])
        return True


def _blueprint_template(name):
    source = ctx.get_resource(name)
    if isinstance(source, bytes):
        source = source.decode('utf-8')
    return source


_template_env = Environment(loader=FunctionLoader(_blueprint_template),
                            keep_trailing_newline=True)


def render_template(source, variables=None):
    """Render the blueprint resource `source` with `variables`."""
    template = _template_env.get_template(source)
    return template.render(**(variables or {}))


def _file_mode(path):
    return os.stat(path).st_mode & 0o7777


def _octal_mode(mode):
    # YAML loads an unquoted 0644 as the integer 420
    if isinstance(mode, int):
        return '{0:o}'.format(mode)
    return str(mode)


def _file_ownership(path):
    stat = os.stat(path)
    try:
        user = pwd.getpwuid(stat.st_uid).pw_name
    except KeyError:
        user = str(stat.st_uid)
    try:
        group = grp.getgrgid(stat.st_gid).gr_name
    except KeyError:
        group = str(stat.st_gid)
    return user, group


def deploy_template(source, destination, owner=None, group=None, mode=None,
                    variables=None):
    """Render `source` to `destination` unless it is already up to date.

    The file is only rewritten if its rendered content differs, and its mode
    and ownership are only touched if they differ from the requested ones.
    `owner`, `group` and `mode` left as None are not managed.

    :return: True if anything on disk changed.
    """
    content = render_template(source, variables)
    changed = False

    if get_file_content(destination) != content:
        ctx.logger.info('Deploying {0} to {1}'.format(source, destination))
        sudo_write_to_file(content, destination)
        changed = True
    else:
        ctx.logger.debug('{0} is up to date'.format(destination))

    if mode is not None:
        mode = _octal_mode(mode)
        if _file_mode(destination) != int(mode, 8):
            chmod(mode, destination)
            changed = True

    if owner is not None or group is not None:
        current_owner, current_group = _file_ownership(destination)
        wanted = (owner or current_owner, group or current_group)
        if wanted != (current_owner, current_group):
            chown(wanted[0], wanted[1], destination)
            changed = True
    return changed


def _version_tuple(version):
    return tuple(int(part) for part in re.findall(r'\d+', str(version)))


def version_at_least(version, minimum):
    """Compare dotted versions numerically, so that '9.10' < '12.04'."""
    return _version_tuple(version) >= _version_tuple(minimum)


def _parse_os_release(path):
    release = {}
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, value = line.split('=', 1)
            release[key] = value.strip('"\'')
    return release


def get_platform(override=None, os_release_path=None):
    """Return the Platform this operation runs on.

    An explicit `override` mapping (`family` and `version`) takes precedence
    over the host's os-release file.
    """
    if override and override.get('family'):
        return Platform(override['family'], str(override.get('version', '')))

    release = _parse_os_release(os_release_path or OS_RELEASE_PATH)
    ids = [release.get('ID', '')] + release.get('ID_LIKE', '').split()
    family = None
    for distro_id in ids:
        family = PLATFORM_FAMILIES.get(distro_id.lower())
        if family:
            break
    platform = Platform(family or release.get('ID', 'unknown'),
                        release.get('VERSION_ID', ''))
    ctx.logger.debug('Detected platform: {0}'.format(platform))
    return platform


def install_package(name, platform):
    """Install a system package unless it is already installed.

    :return: True if the package was installed.
    """
    if platform.family == 'debian':
        query = ['dpkg', '-s', name]
        install = ['apt-get', 'install', '-y', name]
    else:
        query = ['rpm', '-q', name]
        install = ['yum', 'install', '-y', name]

    if run(query, ignore_failures=True).returncode == 0:
        ctx.logger.debug('Package {0} is already installed.'.format(name))
        return False
    ctx.logger.info('Installing package {0}...'.format(name))
    sudo(install)
    return True


def install_gem(name):
    """Install a ruby gem unless it is already installed.

    :return: True if the gem was installed.
    """
    installed = run(['gem', 'list', '-i', name], ignore_failures=True)
    if installed.returncode == 0:
        ctx.logger.debug('Gem {0} is already installed.'.format(name))
        return False
    ctx.logger.info('Installing gem {0}...'.format(name))
    sudo(['gem', 'install', name])
    return True


class InitManager(object):
    """Controls services through one init system.

    `enable`, `start` and `stop` check the current state first and return
    False when there was nothing to do. `restart` and `reload` always act.
    """

    name = None

    def is_enabled(self, service):
        raise NotImplementedError()

    def is_running(self, service):
        raise NotImplementedError()

    def _enable(self, service):
        raise NotImplementedError()

    def _control(self, action, service):
        raise NotImplementedError()

    def enable(self, service):
        if self.is_enabled(service):
            ctx.logger.debug('{0} service {1} is already enabled'.format(
                self.name, service))
            return False
        ctx.logger.debug('Enabling {0} service {1}...'.format(
            self.name, service))
        self._enable(service)
        return True

    def start(self, service):
        if self.is_running(service):
            ctx.logger.debug('{0} service {1} is already running'.format(
                self.name, service))
            return False
        ctx.logger.debug('Starting {0} service {1}...'.format(
            self.name, service))
        self._control('start', service)
        return True

    def stop(self, service):
        if not self.is_running(service):
            ctx.logger.debug('{0} service {1} is not running'.format(
                self.name, service))
            return False
        ctx.logger.debug('Stopping {0} service {1}...'.format(
            self.name, service))
        self._control('stop', service)
        return True

    def restart(self, service):
        ctx.logger.debug('Restarting {0} service {1}...'.format(
            self.name, service))
        self._control('restart', service)
        return True

    def reload(self, service):
        ctx.logger.debug('Reloading {0} service {1}...'.format(
            self.name, service))
        self._control('reload', service)
        return True


class SystemD(InitManager):

    name = 'systemd'

    def systemctl(self, action, service='', retries=0, ignore_failure=False):
        systemctl_cmd = ['systemctl', action]
        if service:
            systemctl_cmd.append(service)
        return sudo(systemctl_cmd, retries=retries,
                    ignore_failures=ignore_failure)

    def daemon_reload(self):
        ctx.logger.debug('Reloading systemd configuration...')
        self.systemctl('daemon-reload')

    def is_enabled(self, service):
        result = run(['systemctl', 'is-enabled', service],
                     ignore_failures=True)
        return result.returncode == 0

    def is_running(self, service):
        result = run(['systemctl', 'is-active', service],
                     ignore_failures=True)
        return result.returncode == 0

    def _enable(self, service):
        self.systemctl('enable', service)

    def _control(self, action, service):
        self.systemctl(action, service)


class Upstart(InitManager):

    name = 'upstart'

    @staticmethod
    def get_job_file_path(service):
        return os.path.join(UPSTART_PATH, '{0}.conf'.format(service))

    @staticmethod
    def get_override_file_path(service):
        return os.path.join(UPSTART_PATH, '{0}.override'.format(service))

    def is_enabled(self, service):
        if not os.path.isfile(self.get_job_file_path(service)):
            return False
        override = get_file_content(self.get_override_file_path(service))
        return override is None or 'manual' not in override.split()

    def is_running(self, service):
        result = run(['initctl', 'status', service], ignore_failures=True)
        return 'start/running' in result.aggr_stdout

    def _enable(self, service):
        # jobs are disabled by a 'manual' stanza in their override file
        override = self.get_override_file_path(service)
        if os.path.isfile(override):
            sudo(['sed', '-i', '/^manual$/d', override])

    def _control(self, action, service):
        sudo(['initctl', action, service])

    def restart(self, service):
        # initctl refuses to restart a job that is not running
        if not self.is_running(service):
            return self.start(service)
        return super(Upstart, self).restart(service)


class SysVInit(InitManager):

    name = 'sysvinit'

    def is_enabled(self, service):
        result = run(['/sbin/chkconfig', service], ignore_failures=True)
        return result.returncode == 0

    def is_running(self, service):
        result = run(['/sbin/service', service, 'status'],
                     ignore_failures=True)
        return result.returncode == 0

    def _enable(self, service):
        sudo(['/sbin/chkconfig', '--add', service])
        sudo(['/sbin/chkconfig', service, 'on'])

    def _control(self, action, service):
        sudo(['/sbin/service', service, action])


def service(service_name, actions, manager, supports=None):
    """Drive `service_name` through `actions` using an InitManager.

    `supports` declares which optional operations the service script
    implements. A service that does not support restart is stopped and
    started instead; reloading a service that does not support it is fatal.

    :return: True if any of the actions changed the service.
    """
    supports = supports or {}
    changed = False
    for action in actions:
        if action == 'restart' and supports.get('restart') is False:
            stopped = manager.stop(service_name)
            started = manager.start(service_name)
            changed = stopped or started or changed
        elif action == 'reload' and supports.get('reload') is False:
            fatal('Service {0} does not support reload'.format(service_name))
        else:
            changed = getattr(manager, action)(service_name) or changed
    return changed
