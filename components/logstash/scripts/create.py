#!/usr/bin/env python

from os.path import (
    dirname,
    join,
)

from cloudify import ctx
from cloudify.state import ctx_parameters as inputs

ctx.download_resource(
    join('components', 'utils.py'),
    join(dirname(__file__), 'utils.py'))
ctx.download_resource(
    join('components', 'logstash', 'scripts', 'logstash_attributes.py'),
    join(dirname(__file__), 'logstash_attributes.py'))
import utils  # NOQA
import logstash_attributes  # NOQA

INSTANCE = inputs.get('instance') or ctx.node.properties['instance_name']

# Some runtime properties to be used by the other operations
runtime_props = ctx.instance.runtime_properties
runtime_props['instance'] = INSTANCE
runtime_props['service_name'] = 'logstash_{0}'.format(INSTANCE)


def create_instance_layout():
    """Create the service user and the directories of the instance."""
    attributes = logstash_attributes.InstanceAttributes(
        INSTANCE, ctx.node.properties)
    user = attributes['user']
    group = attributes['group']
    home = join(attributes['basedir'], INSTANCE)
    runtime_props['home_dir'] = home

    ctx.logger.info('Creating logstash instance {0} in {1}...'.format(
        INSTANCE, home))
    utils.create_service_user(user, group, home)
    for directory in (home, join(home, 'etc', 'conf.d'), join(home, 'log')):
        utils.mkdir(directory)
    utils.chown(user, group, home, recursive=True)


if __name__ == '__main__':
    create_instance_layout()
