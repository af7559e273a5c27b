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

from os.path import join
from collections import namedtuple

from cloudify import ctx

import utils  # NOQA
from logstash_attributes import InstanceAttributes  # NOQA

DEFAULT_MODE = '0644'

ConfigPlan = namedtuple(
    'ConfigPlan',
    'instance templates templates_cookbook variables path owner group mode')


def template_source(cookbook, name):
    """Blueprint resource path of template `name` in component `cookbook`."""
    return 'components/{0}/config/{1}'.format(cookbook, name)


def resolve_config_plan(instance, node_properties, overrides=None):
    """Build the ConfigPlan of `instance`.

    :param instance: name of the logstash instance (e.g. 'server').
    :param node_properties: the node properties holding `logstash.instance`.
    :param overrides: explicit values for any ConfigPlan field.
    """
    overrides = overrides or {}
    attributes = InstanceAttributes(instance, node_properties)
    path = overrides.get('path') or '{0}/{1}/etc/conf.d'.format(
        attributes['basedir'], instance)
    return ConfigPlan(
        instance=instance,
        templates=attributes.get('config_templates',
                                 overrides.get('templates')),
        templates_cookbook=attributes.get('config_templates_cookbook',
                                          overrides.get('templates_cookbook')),
        variables=attributes.get('config_templates_variables',
                                 overrides.get('variables')),
        path=path,
        owner=attributes.get('user', overrides.get('owner')),
        group=attributes.get('group', overrides.get('group')),
        mode=overrides.get('mode') or DEFAULT_MODE,
    )


def create(plan):
    """Render every template of `plan` into its configuration directory.

    :return: True if any configuration file changed.
    """
    ctx.logger.info('Deploying logstash configuration for {0}...'.format(
        plan.instance))
    changed = False
    for template, destination in sorted(plan.templates.items()):
        changed = utils.deploy_template(
            template_source(plan.templates_cookbook, template),
            join(plan.path, destination),
            owner=plan.owner,
            group=plan.group,
            mode=plan.mode,
            variables=plan.variables) or changed
    return changed
