"""
Layered configuration files, validated against a schema and applied to module attributes.

A configuration called name lives in one directory as name.schema.cfg, which is required and
gives every setting its type and default, plus these optional files, each overriding the one
before:

- name.default.cfg
- name.<platform>.cfg, e.g. name.osx.cfg or name.linux.cfg
- ~/name.cfg, the user's overrides
- name.cfg
"""
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator

extension = '.cfg'


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('uaconsole', 'osx')
    'uaconsole.osx'
    """
    return "%s.%s" % (name, flavor) if flavor else name


def config_filename(name, directory):
    return os.path.join(directory, name + extension)


def user_config_file(name):
    return os.path.join(os.path.expanduser('~'), name + extension)


def map_os_name(name):
    """
    >>> map_os_name('Windows'), map_os_name("Darwin")
    ('windows', 'osx')
    """
    name = name.lower()
    return 'osx' if name == 'darwin' else name


def os_name():
    return map_os_name(platform.system())


def load_config_file_base(file, must_exist=True) -> ConfigObj:
    """
    Reads one configuration file. A missing optional file reads as an empty configuration.
    raises IOError when a required file is missing, and ConfigObjError naming the file
    when it cannot be parsed.
    """
    if not must_exist and not os.path.exists(file):
        return ConfigObj()
    try:
        return ConfigObj(file, interpolation='Template', file_error=True)
    except ConfigObjError as e:
        raise type(e)("%s at %s" % (e, file))


def config_layers(name, directory, user_file=None):
    """ yields the optional files of a configuration, lowest precedence first. """
    for flavor in ('default', os_name()):
        yield load_config_file_base(config_filename(config_flavor(name, flavor), directory), must_exist=False)
    yield load_config_file_base(user_file or user_config_file(name), must_exist=False)
    yield load_config_file_base(config_filename(name, directory), must_exist=False)


def describe_errors(config, result):
    """ lists each setting that failed validation, as section/key: reason. """
    errors = []
    for sections, key, error in flatten_errors(config, result):
        location = '/'.join(sections + ([key] if key is not None else []))
        errors.append("%s: %s" % (location, error or "missing"))
    return ", ".join(errors)


def load_config(name, directory, user_file=None) -> ConfigObj:
    """
    Merges the files of a configuration and validates the result against its schema.
    :param directory: the location of the configuration files
    :param user_file: the user's overrides. Defaults to ~/name.cfg
    :return: the validated configuration, with defaults filled in from the schema
    """
    schema_file = config_filename(config_flavor(name, 'schema'), directory)
    if not os.path.exists(schema_file):
        raise ConfigObjError("the config file %s has no schema at %s" % (name, schema_file))

    config = ConfigObj(configspec=schema_file)
    for layer in config_layers(name, directory, user_file):
        config.merge(layer)

    result = config.validate(Validator())
    if result is not True:
        raise ConfigObjError("the config file %s failed validation: %s" % (name, describe_errors(config, result)))
    return config


def fetch_conf_path(conf: Section, path):
    """
    :param path: section names, outermost first
    :return: the nested section, or None when any part of the path is missing
    """
    for name in path:
        conf = conf.get(name)
        if conf is None:
            return None
    return conf


def apply_conf(conf, target):
    """
    Copies each value onto the target attribute of the same name. Values with no matching
    attribute are skipped, so a configuration never adds attributes.
    """
    for name in [name for name in conf if hasattr(target, name)]:
        setattr(target, name, conf[name])


def fq_module_name(module):
    if not module.__package__:
        raise ConfigObjError("module has no package defined")
    return module.__name__


def configure_module(module, config_name=None, user_file=None):
    """
    Applies a configuration to a module's attributes.

    The values for module x.y.z are read from section [x] [[y]] [[[z]]] of the configuration
    named config_name, or z when not given, found beside the module's source file.
    :return: the loaded configuration
    """
    fqname = fq_module_name(module)
    parts = fqname.split('.')
    conf = load_config(config_name or parts[-1], os.path.dirname(module.__file__), user_file)
    section = fetch_conf_path(conf, parts)
    if section:
        apply_conf(section, module)
    return conf
