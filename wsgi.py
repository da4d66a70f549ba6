"""WSGI entry point for production deployment.

The autoscale loop is not started here unless AUTOSCALE_WEB_LOOP=1. Run it
with ``python main.py run`` in one process, or enable it only under a
single-worker server: per-alarm locks do not span processes.
"""
import sys
import logging
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

from config import load_config, web_loop_enabled
from utils.logger import setup_logging
from alarms.scheduler import AutoScaleScheduler
from web.app import create_app
from main import init_components

logger = logging.getLogger("autoscale.wsgi")

config = load_config()
setup_logging(config["logging"]["level"], config["logging"].get("file"))

components = init_components(config)
app = create_app(config, components)

if web_loop_enabled():
    scheduler = AutoScaleScheduler(components["engine"], config["autoscale"]["interval"])
    scheduler.start()
    logger.info(f"Autoscale loop started every {config['autoscale']['interval']}s")
