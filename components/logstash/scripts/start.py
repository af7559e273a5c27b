#!/usr/bin/env python

from os.path import (
    dirname,
    join,
)

from cloudify import ctx
from cloudify.state import ctx_parameters as inputs

SCRIPTS_PATH = join('components', 'logstash', 'scripts')

ctx.download_resource(
    join('components', 'utils.py'),
    join(dirname(__file__), 'utils.py'))
for helper in ('logstash_attributes.py', 'logstash_config.py',
               'logstash_service.py'):
    ctx.download_resource(join(SCRIPTS_PATH, helper),
                          join(dirname(__file__), helper))
import utils  # NOQA
import logstash_service  # NOQA

runtime_props = ctx.instance.runtime_properties
INSTANCE = inputs.get('instance') or ctx.node.properties['instance_name']


def start_logstash():
    properties = ctx.node.properties
    overrides = inputs.get('overrides')
    platform = utils.get_platform(properties.get('platform'))

    ctx.logger.info('Starting Logstash {0} Service...'.format(INSTANCE))
    logstash_service.start_service(
        INSTANCE, properties, overrides, platform,
        restart_required=runtime_props.get('restart_required', False))
    runtime_props['restart_required'] = False


if __name__ == '__main__':
    start_logstash()
