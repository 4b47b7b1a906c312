"""
Pytest configuration for Django tests.
"""
import os

# pytest-django reads the settings module from pyproject.toml; this covers plain imports
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'order_engine.settings')
