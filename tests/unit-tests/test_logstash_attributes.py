import os
import sys
from unittest import TestCase

sys.path.insert(0, os.path.join(os.path.dirname(__file__),
                                '../../components/logstash/scripts'))
from logstash_attributes import DEFAULTS, InstanceAttributes  # NOQA


NODE_PROPERTIES = {
    'logstash': {
        'instance': {
            'default': {
                'basedir': '/srv/logstash',
                'user': 'ls',
                'debug': True,
                'workers': 2,
            },
            'server': {
                'user': 'ls-server',
                'debug': False,
                'workers': None,
            },
        }
    }
}


class InstanceAttributesTest(TestCase):

    def test_named_instance_wins(self):
        attributes = InstanceAttributes('server', NODE_PROPERTIES)
        self.assertEqual(attributes['user'], 'ls-server')

    def test_false_is_a_value(self):
        attributes = InstanceAttributes('server', NODE_PROPERTIES)
        self.assertIs(attributes['debug'], False)

    def test_unset_falls_back_to_default_instance(self):
        attributes = InstanceAttributes('server', NODE_PROPERTIES)
        self.assertEqual(attributes['basedir'], '/srv/logstash')
        self.assertEqual(attributes['workers'], 2)

    def test_unset_everywhere_falls_back_to_literal(self):
        attributes = InstanceAttributes('server', NODE_PROPERTIES)
        self.assertEqual(attributes['group'], DEFAULTS['group'])
        self.assertEqual(attributes['init_method'], 'native')

    def test_unknown_attribute(self):
        attributes = InstanceAttributes('server', NODE_PROPERTIES)
        self.assertIsNone(attributes['pluginpath'])
        self.assertEqual(attributes.get('pluginpath', default='/p'), '/p')

    def test_override_wins(self):
        attributes = InstanceAttributes('server', NODE_PROPERTIES)
        self.assertEqual(attributes.get('user', override='root'), 'root')

    def test_absent_instance_uses_default_instance(self):
        attributes = InstanceAttributes('agent', NODE_PROPERTIES)
        self.assertEqual(attributes['user'], 'ls')
        self.assertIs(attributes['debug'], True)
        self.assertEqual(attributes['basedir'], '/srv/logstash')

    def test_default_instance_itself(self):
        attributes = InstanceAttributes('default', NODE_PROPERTIES)
        self.assertEqual(len(attributes.layers), 2)
        self.assertEqual(attributes['user'], 'ls')

    def test_no_logstash_properties(self):
        attributes = InstanceAttributes('server', {})
        self.assertEqual(attributes['basedir'], '/opt/logstash')
        self.assertEqual(attributes['config_templates'], {})
