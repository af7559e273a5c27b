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
for helper in ('logstash_attributes.py', 'logstash_config.py'):
    ctx.download_resource(join(SCRIPTS_PATH, helper),
                          join(dirname(__file__), helper))
import logstash_config  # NOQA

runtime_props = ctx.instance.runtime_properties
INSTANCE = inputs.get('instance') or ctx.node.properties['instance_name']


def configure_logstash():
    plan = logstash_config.resolve_config_plan(
        INSTANCE, ctx.node.properties, inputs.get('overrides'))
    if logstash_config.create(plan):
        # restarted by the start operation, once the service is enabled
        ctx.logger.info('Configuration of {0} changed, scheduling a '
                        'restart'.format(INSTANCE))
        runtime_props['restart_required'] = True


if __name__ == '__main__':
    configure_logstash()
