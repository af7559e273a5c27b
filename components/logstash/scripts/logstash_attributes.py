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

DEFAULT_INSTANCE = 'default'

# Used when neither the instance nor the default instance set an attribute
DEFAULTS = {
    'basedir': '/opt/logstash',
    'user': 'logstash',
    'group': 'logstash',
    'init_method': 'native',
    'install_type': 'tarball',
    'config_templates': {},
    'config_templates_cookbook': 'logstash',
    'config_templates_variables': {},
}


class InstanceAttributes(object):
    """Attributes of one logstash instance, looked up layer by layer.

    The node properties hold one attribute mapping per instance under
    `logstash.instance`, plus a `default` entry. A lookup returns the first
    value that is set in, in order: an explicit override, the named
    instance, the default instance and the built-in DEFAULTS.
    """

    def __init__(self, instance, node_properties):
        self.instance = instance
        instances = (node_properties.get('logstash') or {}).get(
            'instance') or {}
        self.layers = []
        if instance in instances:
            self.layers.append(instances[instance] or {})
        if instance != DEFAULT_INSTANCE:
            self.layers.append(instances.get(DEFAULT_INSTANCE) or {})
        self.layers.append(DEFAULTS)

    def get(self, key, override=None, default=None):
        if override is not None:
            return override
        for layer in self.layers:
            value = layer.get(key)
            if value is not None:
                return value
        return default

    def __getitem__(self, key):
        return self.get(key)
