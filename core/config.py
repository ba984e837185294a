""" Load controller configuration from a YAML file.

Expected layout:
    controllers:
        <label>:
            type: <controller class name>
            <property>: <value>
"""

from typing import Any, Callable, Dict, Optional, Type
from pathlib import Path
import logging
import pprint

from ruamel.yaml import YAML, YAMLError  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "config.yaml"

# Keys that configure the loader rather than the controller instance.
RESERVED_KEYS = ("type",)


class ConfigError(Exception):
    """ The configuration file could not be used. """


def load_config(filename: str = DEFAULT_CONFIG) -> Dict[str, Any]:
    """ Read a configuration file.
    Returns:
        The parsed config. Empty if the file does not exist.
    Raises:
        ConfigError: The file is not valid YAML. """
    path = Path(filename)
    if not path.exists():
        logger.info("No config file at %s", path)
        return {}

    yaml = YAML(typ="safe")
    try:
        config = yaml.load(path)
    except YAMLError as error:
        mark = getattr(error, "problem_mark", None)
        if mark is None:
            raise ConfigError("Problem in configuration file %s: %s" % (path, error)) from error
        raise ConfigError("Problem in configuration file %s  line: %s  column: %s" %
                          (mark.name, mark.line, mark.column)) from error

    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ConfigError("Configuration file %s must contain a mapping." % path)

    logger.debug("Config:\n%s", pprint.pformat(config))
    return config


def setup_controllers(config: Dict[str, Any],
                      controller_classes: Dict[str, Type[Any]],
                      on_update_callback: Optional[Callable[[str, Any], None]] = None
                      ) -> Dict[str, Any]:
    """ Instantiate every controller listed in config.
    Args:
        controller_classes: Class name to class for every controller type that
                            may appear in the config.
    Returns:
        Controller label to controller instance. """
    controllers = {}
    for label, controller in (config.get("controllers") or {}).items():
        if controller.get("type") not in controller_classes:
            raise ConfigError(
                "Controller type '%s' specified in config file does not exist." %
                controller.get("type"))
        class_ = controller_classes[controller["type"]]
        instance = class_(label, on_update_callback)

        for property_, value in controller.items():
            if property_ in RESERVED_KEYS:
                continue
            if hasattr(instance, property_):
                setattr(instance, property_, value)
            else:
                logger.warning("Unrecognised config parameter "
                               "[controller, property, value]: %s, %s, %s",
                               label, property_, value)

        controllers[label] = instance
    return controllers
