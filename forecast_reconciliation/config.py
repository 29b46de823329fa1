# forecast_reconciliation/config.py
import os
import configparser
from pathlib import Path

DEFAULT_SETTINGS = {
    'DATABASE': {
        'engine': 'postgresql',
        'host': 'localhost',
        'port': '5432',
        'database': 'merch_ops',
        'username': 'postgres',
        'password': 'postgres',
        'url': '',
        'pool_size': '10',
        'max_overflow': '20',
        'pool_timeout': '30',
        'pool_recycle': '1800',
        'echo': 'False'
    },
    'LOGGING': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'directory': 'logs',
        'max_size_mb': '10',
        'backup_count': '5',
        'console_output': 'True',
        'file_output': 'True'
    },
    'BATCH_PROCESS': {
        'pending_import_ttl_minutes': '30',
        'pending_sweep_interval_minutes': '10',
        'max_messages': '50'
    },
    'RECONCILIATION': {
        'standard_lead_months': '3',
        'mto_grace_days': '30',
        'mto_snapshot_window_days': '40',
        'backtest_standard_lead_days': '90',
        'backtest_mto_lead_days': '30',
        'horizon_grace_days': '14',
        'variance_alert_pct': '10',
        'overdue_threshold_days': '90',
        'max_order_ref_length': '255',
        'mto_marker': 'MTO',
        'known_brands': 'CB,CB2,C&K',
        'brand_aliases': 'CK:C&K',
        'excluded_brands': 'CBH',
        'default_category_group': 'FURNITURE',
        'known_mto_collections': 'ambroise,forte,hoxton,pm symmetric,vera,aviator,lowe,emile,laura/tiff,laura,tiff,blume,soma,edendale'
    }
}


class Config:
    """Configuration manager for the Forecast Reconciliation Engine."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the configuration if not already initialized."""
        if self._initialized:
            return

        self._config_path = Path(os.environ.get('FORECAST_RECON_CONFIG', 'config/settings.ini'))
        self._config = configparser.ConfigParser(interpolation=None)

        # Defaults first so a partial settings file still resolves every key
        self._config.read_dict(DEFAULT_SETTINGS)
        if self._config_path.exists():
            self._config.read(self._config_path)

        self._initialized = True

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_list(self, section, key, default=None):
        """Get a comma separated configuration value as a list of stripped strings."""
        value = self.get(section, key)
        if value is None:
            return list(default or [])
        return [part.strip() for part in value.split(',') if part.strip()]

    def get_db_url(self):
        """Generate SQLAlchemy database URL."""
        url = self.get('DATABASE', 'url', '')
        if url:
            return url

        engine = self.get('DATABASE', 'engine', 'postgresql')
        username = self.get('DATABASE', 'username', 'postgres')
        password = self.get('DATABASE', 'password', 'postgres')
        host = self.get('DATABASE', 'host', 'localhost')
        port = self.get('DATABASE', 'port', '5432')
        database = self.get('DATABASE', 'database', 'merch_ops')

        return f"{engine}://{username}:{password}@{host}:{port}/{database}"

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True),
            'file_output': self.get_boolean('LOGGING', 'file_output', True)
        }

    @property
    def batch_config(self):
        """Get batch processing configuration."""
        return {
            'pending_import_ttl_minutes': self.get_int('BATCH_PROCESS', 'pending_import_ttl_minutes', 30),
            'pending_sweep_interval_minutes': self.get_int('BATCH_PROCESS', 'pending_sweep_interval_minutes', 10),
            'max_messages': self.get_int('BATCH_PROCESS', 'max_messages', 50)
        }

    @property
    def reconciliation_rules(self):
        """Get reconciliation business rules."""
        aliases = {}
        for pair in self.get_list('RECONCILIATION', 'brand_aliases'):
            if ':' in pair:
                source, target = pair.split(':', 1)
                aliases[source.strip().upper()] = target.strip().upper()

        return {
            'standard_lead_months': self.get_int('RECONCILIATION', 'standard_lead_months', 3),
            'mto_grace_days': self.get_int('RECONCILIATION', 'mto_grace_days', 30),
            'mto_snapshot_window_days': self.get_int('RECONCILIATION', 'mto_snapshot_window_days', 40),
            'backtest_standard_lead_days': self.get_int('RECONCILIATION', 'backtest_standard_lead_days', 90),
            'backtest_mto_lead_days': self.get_int('RECONCILIATION', 'backtest_mto_lead_days', 30),
            'horizon_grace_days': self.get_int('RECONCILIATION', 'horizon_grace_days', 14),
            'variance_alert_pct': self.get_int('RECONCILIATION', 'variance_alert_pct', 10),
            'overdue_threshold_days': self.get_int('RECONCILIATION', 'overdue_threshold_days', 90),
            'max_order_ref_length': self.get_int('RECONCILIATION', 'max_order_ref_length', 255),
            'mto_marker': self.get('RECONCILIATION', 'mto_marker', 'MTO').strip().upper(),
            'known_brands': [b.upper() for b in self.get_list('RECONCILIATION', 'known_brands')],
            'brand_aliases': aliases,
            'excluded_brands': [b.upper() for b in self.get_list('RECONCILIATION', 'excluded_brands')],
            'default_category_group': self.get('RECONCILIATION', 'default_category_group', 'FURNITURE'),
            'known_mto_collections': [c.lower() for c in self.get_list('RECONCILIATION', 'known_mto_collections')]
        }

# Global config instance
config = Config()
