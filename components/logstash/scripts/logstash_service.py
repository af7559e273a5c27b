#!/usr/bin/env python
#########
# Copyright (c) 2017 GigaSpaces Technologies Ltd. All rights reserved
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
#  * WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  * See the License for the specific language governing permissions and
#  * limitations under the License.

import os
from os.path import join
from functools import partial
from collections import namedtuple

from cloudify import ctx

import utils  # NOQA
from logstash_attributes import InstanceAttributes  # NOQA
from logstash_config import template_source  # NOQA

COMPONENT = 'logstash'
INIT_METHODS = ('native', 'pleaserun', 'runit')

ServicePlan = namedtuple(
    'ServicePlan',
    'instance service_name home method command args description chdir '
    'user group')

InitStrategy = namedtuple(
    'InitStrategy', 'method families version_check enable manager')


def build_args(home, pluginpath=None, debug=False, log_file=None,
               workers=None):
    """Build the command line arguments logstash is started with."""
    args = ['agent', '-f', '{0}/etc/conf.d/'.format(home)]
    if pluginpath is not None:
        args.extend(['--pluginpath', pluginpath])
    if debug:
        args.append('-vv')
    if log_file is not None:
        args.extend(['-l', '{0}/log/{1}'.format(home, log_file)])
    if workers is not None:
        args.extend(['-w', str(workers)])
    return args


def _plan_from_attributes(attributes, overrides=None):
    overrides = overrides or {}
    instance = attributes.instance
    service_name = overrides.get('service_name') or \
        'logstash_{0}'.format(instance)
    home = '{0}/{1}'.format(attributes['basedir'], instance)
    args = overrides.get('args')
    if args is None:
        args = build_args(home,
                          pluginpath=attributes['pluginpath'],
                          debug=attributes['debug'],
                          log_file=attributes['log_file'],
                          workers=attributes['workers'])
    return ServicePlan(
        instance=instance,
        service_name=service_name,
        home=home,
        method=attributes.get('init_method', overrides.get('method')),
        command=overrides.get('command') or '{0}/bin/logstash'.format(home),
        args=list(args),
        description=overrides.get('description') or service_name,
        chdir=overrides.get('chdir') or home,
        user=attributes.get('user', overrides.get('user')),
        group=attributes.get('group', overrides.get('group')),
    )


def resolve_service_plan(instance, node_properties, overrides=None):
    """Build the ServicePlan of `instance` from the node properties."""
    return _plan_from_attributes(
        InstanceAttributes(instance, node_properties), overrides)


def _any_version(version):
    return True


def _version_at_least(minimum):
    return partial(utils.version_at_least, minimum=minimum)


def _enable_pleaserun(plan, attributes, platform):
    changed = utils.install_gem('pleaserun')
    init_script = join(utils.INIT_D_PATH, plan.service_name)
    if os.path.exists(init_script):
        ctx.logger.info('{0} already exists, not generating it'.format(
            init_script))
        return changed
    ctx.logger.info('Generating {0} service with pleaserun...'.format(
        plan.service_name))
    utils.sudo([
        'pleaserun', '--install',
        '--name', plan.service_name,
        '--description', plan.description,
        '--chdir', plan.chdir,
        '--user', plan.user,
        '--group', plan.group,
        plan.command,
    ] + plan.args)
    return True


def _enable_runit(plan, attributes, platform):
    changed = utils.install_package('runit', platform)
    sv_dir = join(utils.RUNIT_SV_PATH, plan.service_name)
    log_dir = join(utils.BASE_LOG_DIR, plan.service_name)
    variables = _service_variables(plan)
    variables['log_dir'] = log_dir

    changed = utils.mkdir(log_dir) or changed
    for source, destination in (('runit/sv-logstash-run', 'run'),
                                ('runit/sv-logstash-log-run', 'log/run')):
        changed = utils.deploy_template(
            template_source(COMPONENT, source),
            join(sv_dir, destination),
            owner='root', group='root', mode='0755',
            variables=variables) or changed

    service_link = join(utils.RUNIT_SERVICE_PATH, plan.service_name)
    if not os.path.islink(service_link):
        ctx.logger.info('Registering {0} with runit...'.format(
            plan.service_name))
        utils.ln(sv_dir, service_link, '-s')
        changed = True
    return changed


def _enable_upstart(plan, attributes, platform):
    if attributes['install_type'] == 'tarball':
        source = 'init/binary_upstart.conf'
    else:
        source = 'init/java_upstart.conf'
    changed = utils.deploy_template(
        template_source(COMPONENT, source),
        utils.Upstart.get_job_file_path(plan.service_name),
        owner='root', group='root', mode='0644',
        variables=_service_variables(plan))
    return utils.service(
        plan.service_name, ['enable'], utils.Upstart(),
        supports={'restart': True, 'reload': True,
                  'start': True, 'stop': True}) or changed


def _upstart_unsupported(plan, attributes, platform):
    utils.fatal(
        "Please set node['logstash']['instance']['{0}']['init_method'] to "
        "'runit' for {1}".format(plan.instance, platform.version))


def _enable_systemd(plan, attributes, platform):
    manager = utils.SystemD()
    unit_changed = utils.deploy_template(
        template_source(COMPONENT, 'logstash.service'),
        join(utils.SYSTEMD_PATH, '{0}.service'.format(plan.service_name)),
        owner='root', group='root', mode='0755',
        variables=_service_variables(plan))
    if unit_changed:
        manager.daemon_reload()
    enabled = utils.service(plan.service_name, ['enable'], manager)
    started = utils.service(plan.service_name, ['start'], manager)
    # a freshly started service already runs the new unit
    if unit_changed and not started:
        utils.service(plan.service_name, ['restart'], manager)
    return unit_changed or enabled or started


def _enable_sysvinit(plan, attributes, platform):
    variables = _service_variables(plan)
    variables.update({
        'config_file': attributes['config_dir'],
        'log_file': attributes['log_file'],
        'max_heap': attributes['xmx'],
        'min_heap': attributes['xms'],
    })
    changed = utils.deploy_template(
        template_source(COMPONENT, 'init/sysvinit'),
        join(utils.INIT_D_PATH, plan.service_name),
        owner='root', group='root', mode='0774',
        variables=variables)
    return utils.service(
        plan.service_name, ['enable', 'start'], utils.SysVInit(),
        supports={'restart': True, 'reload': True,
                  'status': True}) or changed


def _service_variables(plan):
    return {
        'home': plan.home,
        'name': plan.instance,
        'service_name': plan.service_name,
        'command': plan.command,
        'args': plan.args,
        'description': plan.description,
        'chdir': plan.chdir,
        'user': plan.user,
        'group': plan.group,
    }


# Evaluated in order, the first matching strategy wins
INIT_STRATEGIES = [
    InitStrategy('pleaserun', None, _any_version, _enable_pleaserun, None),
    InitStrategy('runit', None, _any_version, _enable_runit, None),
    InitStrategy('native', ('debian',), _version_at_least('12.04'),
                 _enable_upstart, utils.Upstart),
    InitStrategy('native', ('debian',), _any_version,
                 _upstart_unsupported, None),
    InitStrategy('native', ('fedora',), _version_at_least('15'),
                 _enable_systemd, utils.SystemD),
    InitStrategy('native', ('rhel', 'fedora'), _any_version,
                 _enable_sysvinit, utils.SysVInit),
]


def select_strategy(method, platform):
    for strategy in INIT_STRATEGIES:
        if strategy.method != method:
            continue
        if strategy.families and platform.family not in strategy.families:
            continue
        if strategy.version_check(platform.version):
            return strategy
    return None


def _strategy_or_fatal(method, platform):
    strategy = select_strategy(method, platform)
    if strategy is None:
        if method in INIT_METHODS:
            utils.fatal('Unsupported platform {0} {1} for init method '
                        '{2}'.format(platform.family, platform.version,
                                     method))
        utils.fatal('Unsupported init method: {0}'.format(method))
    return strategy


def enable(plan, attributes, platform):
    """Register the logstash service with the init system.

    :return: True if anything changed.
    """
    ctx.logger.info('Using init method {0} for {1}'.format(
        plan.method, plan.service_name))
    strategy = _strategy_or_fatal(plan.method, platform)
    return strategy.enable(plan, attributes, platform)


def _native_control(action, plan, attributes, platform):
    # TODO: drive runit (sv) and pleaserun services here as well once the
    # expected behaviour for those init methods is settled.
    if plan.method != 'native':
        ctx.logger.info('Not running {0} for {1}: only supported with the '
                        'native init method, not {2}'.format(
                            action, plan.service_name, plan.method))
        return False
    strategy = _strategy_or_fatal(plan.method, platform)
    if strategy.manager is None:
        return strategy.enable(plan, attributes, platform)
    ctx.logger.info('Running {0} on {1}...'.format(action, plan.service_name))
    return utils.service(plan.service_name, [action], strategy.manager())


start = partial(_native_control, 'start')
stop = partial(_native_control, 'stop')
restart = partial(_native_control, 'restart')
reload = partial(_native_control, 'reload')

ACTIONS = {
    'enable': enable,
    'start': start,
    'stop': stop,
    'restart': restart,
    'reload': reload,
}


def perform(action, instance, node_properties, overrides=None,
            platform=None):
    """Resolve the ServicePlan of `instance` and run `action` on it.

    :param action: one of ACTIONS.
    :param platform: a utils.Platform; detected from the host when omitted.
    :return: True if the service or its files changed.
    """
    if action not in ACTIONS:
        utils.fatal('Unsupported service action: {0}'.format(action))
    attributes = InstanceAttributes(instance, node_properties)
    plan = _plan_from_attributes(attributes, overrides)
    if platform is None:
        platform = utils.get_platform(node_properties.get('platform'))
    changed = ACTIONS[action](plan, attributes, platform)
    ctx.logger.info('{0} {1}: {2}'.format(
        action, plan.service_name, 'updated' if changed else 'no change'))
    return changed


def start_service(instance, node_properties, overrides=None, platform=None,
                  restart_required=False):
    """Enable and start `instance`, restarting it for a pending config change.

    The restart only happens when neither enable nor start touched the
    service, since systemd and sysvinit start it while enabling it.
    """
    if platform is None:
        platform = utils.get_platform(node_properties.get('platform'))
    enabled = perform('enable', instance, node_properties, overrides,
                      platform)
    started = perform('start', instance, node_properties, overrides,
                      platform)
    if restart_required and not (enabled or started):
        return perform('restart', instance, node_properties, overrides,
                       platform)
    return enabled or started
