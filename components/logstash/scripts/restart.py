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
import logstash_service  # NOQA

INSTANCE = inputs.get('instance') or ctx.node.properties['instance_name']


if __name__ == '__main__':
    logstash_service.perform('restart', INSTANCE, ctx.node.properties,
                             inputs.get('overrides'))
