"""Logging and project-file helpers."""

import json
import logging
import os

import numpy as np
import yaml


def setup_logging(output_dir):
    """
    Set up logging to file and console with proper encoding.
    """
    os.makedirs(output_dir, exist_ok=True)
    log_file = os.path.join(output_dir, 'solar_roi.log')

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Prevent adding multiple handlers if setup_logging is called multiple times
    if not logger.handlers:
        c_handler = logging.StreamHandler()
        f_handler = logging.FileHandler(log_file, encoding='utf-8')
        c_handler.setLevel(logging.INFO)
        f_handler.setLevel(logging.DEBUG)

        c_format = logging.Formatter('%(levelname)s - %(message)s')
        f_format = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
        c_handler.setFormatter(c_format)
        f_handler.setFormatter(f_format)

        logger.addHandler(c_handler)
        logger.addHandler(f_handler)

    return logger


def load_config(config_file):
    """
    Load a project definition from a YAML file.

    Parameters:
    - config_file (str): Path to the YAML project file.

    Returns:
    - config (dict): Project parameters.
    """
    try:
        with open(config_file, 'r', encoding='utf-8') as file:
            config = yaml.safe_load(file)
        logging.info(f"Configuration loaded from {config_file}")
    except Exception as e:
        logging.error(f"Error loading configuration file: {e}", exc_info=True)
        raise
    if not isinstance(config, dict):
        logging.error(f"Configuration file {config_file} does not contain a mapping")
        raise ValueError(f"Configuration file {config_file} does not contain a mapping")
    return config


def _json_default(value):
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def save_summary(summary, output_dir, filename='summary.json'):
    """Write a results dictionary as JSON and return its path."""
    path = os.path.join(output_dir, filename)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(summary, f, indent=2, default=_json_default)
    logging.info(f"Summary saved to {path}")
    return path
