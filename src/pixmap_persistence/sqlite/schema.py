from typing import List, Tuple

# All timestamps are INTEGER epoch milliseconds (UTC).

TABLES: List[Tuple[str, str]] = [
    (
        "locations",
        """
        CREATE TABLE IF NOT EXISTS locations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            latitude REAL NOT NULL CHECK (latitude BETWEEN -90 AND 90),
            longitude REAL NOT NULL CHECK (longitude BETWEEN -180 AND 180),
            city TEXT NOT NULL DEFAULT '',
            state TEXT NOT NULL DEFAULT '',
            photo_path TEXT,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            timestamp INTEGER NOT NULL
        )
        """,
    ),
    (
        "settings",
        """
        CREATE TABLE IF NOT EXISTS settings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            key TEXT NOT NULL UNIQUE,
            value TEXT NOT NULL,
            description TEXT,
            timestamp INTEGER NOT NULL
        )
        """,
    ),
    (
        "tip_types",
        """
        CREATE TABLE IF NOT EXISTS tip_types (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            i8n TEXT NOT NULL DEFAULT 'en-US',
            timestamp INTEGER NOT NULL
        )
        """,
    ),
    (
        "tips",
        """
        CREATE TABLE IF NOT EXISTS tips (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            tip_type_id INTEGER NOT NULL REFERENCES tip_types(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            content TEXT NOT NULL DEFAULT '',
            fstop TEXT NOT NULL DEFAULT '',
            shutter_speed TEXT NOT NULL DEFAULT '',
            iso TEXT NOT NULL DEFAULT '',
            i8n TEXT NOT NULL DEFAULT 'en-US',
            timestamp INTEGER NOT NULL
        )
        """,
    ),
    (
        "weather",
        """
        CREATE TABLE IF NOT EXISTS weather (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            location_id INTEGER NOT NULL REFERENCES locations(id) ON DELETE CASCADE,
            latitude REAL NOT NULL,
            longitude REAL NOT NULL,
            timezone TEXT NOT NULL DEFAULT '',
            timezone_offset INTEGER NOT NULL DEFAULT 0,
            last_update INTEGER NOT NULL,
            timestamp INTEGER NOT NULL
        )
        """,
    ),
    (
        "weather_forecasts",
        """
        CREATE TABLE IF NOT EXISTS weather_forecasts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            weather_id INTEGER NOT NULL REFERENCES weather(id) ON DELETE CASCADE,
            forecast_date TEXT NOT NULL,
            sunrise INTEGER NOT NULL,
            sunset INTEGER NOT NULL,
            temperature REAL NOT NULL,
            min_temperature REAL NOT NULL,
            max_temperature REAL NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            icon TEXT NOT NULL DEFAULT '',
            wind_speed REAL NOT NULL DEFAULT 0,
            wind_direction REAL NOT NULL DEFAULT 0,
            wind_gust REAL,
            humidity INTEGER NOT NULL DEFAULT 0,
            pressure INTEGER NOT NULL DEFAULT 0,
            clouds INTEGER NOT NULL DEFAULT 0,
            uv_index REAL NOT NULL DEFAULT 0,
            precipitation REAL,
            moon_rise INTEGER,
            moon_set INTEGER,
            moon_phase REAL NOT NULL DEFAULT 0
        )
        """,
    ),
    (
        "hourly_forecasts",
        """
        CREATE TABLE IF NOT EXISTS hourly_forecasts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            weather_id INTEGER NOT NULL REFERENCES weather(id) ON DELETE CASCADE,
            date_time INTEGER NOT NULL,
            temperature REAL NOT NULL,
            feels_like REAL NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            icon TEXT NOT NULL DEFAULT '',
            wind_speed REAL NOT NULL DEFAULT 0,
            wind_direction REAL NOT NULL DEFAULT 0,
            wind_gust REAL,
            humidity INTEGER NOT NULL DEFAULT 0,
            pressure INTEGER NOT NULL DEFAULT 0,
            clouds INTEGER NOT NULL DEFAULT 0,
            uv_index REAL NOT NULL DEFAULT 0,
            probability_of_precipitation REAL NOT NULL DEFAULT 0,
            visibility INTEGER NOT NULL DEFAULT 0,
            dew_point REAL NOT NULL DEFAULT 0
        )
        """,
    ),
    (
        "subscriptions",
        """
        CREATE TABLE IF NOT EXISTS subscriptions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            product_id TEXT NOT NULL,
            transaction_id TEXT NOT NULL UNIQUE,
            purchase_token TEXT NOT NULL,
            status TEXT NOT NULL,
            start_date INTEGER NOT NULL,
            expiration_date INTEGER NOT NULL,
            auto_renewing INTEGER NOT NULL DEFAULT 0,
            last_verified INTEGER,
            cancelled_at INTEGER,
            renewal_count INTEGER NOT NULL DEFAULT 0,
            timestamp INTEGER NOT NULL
        )
        """,
    ),
    (
        "camera_bodies",
        """
        CREATE TABLE IF NOT EXISTS camera_bodies (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            sensor_type TEXT NOT NULL,
            sensor_width REAL NOT NULL CHECK (sensor_width > 0),
            sensor_height REAL NOT NULL CHECK (sensor_height > 0),
            mount_type TEXT NOT NULL DEFAULT 'Other',
            is_user_created INTEGER NOT NULL DEFAULT 0,
            manufacturer TEXT NOT NULL DEFAULT '',
            model TEXT NOT NULL DEFAULT '',
            crop_factor REAL NOT NULL DEFAULT 1.0,
            timestamp INTEGER NOT NULL
        )
        """,
    ),
]

INDEXES: List[str] = [
    "CREATE INDEX IF NOT EXISTS idx_locations_is_deleted ON locations(is_deleted)",
    "CREATE INDEX IF NOT EXISTS idx_locations_title ON locations(title)",
    "CREATE INDEX IF NOT EXISTS idx_settings_timestamp ON settings(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_tips_tip_type_id ON tips(tip_type_id)",
    "CREATE INDEX IF NOT EXISTS idx_weather_location_id ON weather(location_id)",
    "CREATE INDEX IF NOT EXISTS idx_weather_forecasts_weather_id ON weather_forecasts(weather_id)",
    "CREATE INDEX IF NOT EXISTS idx_hourly_forecasts_weather_id ON hourly_forecasts(weather_id)",
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_user_id ON subscriptions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_purchase_token ON subscriptions(purchase_token)",
    "CREATE INDEX IF NOT EXISTS idx_camera_bodies_mount_type ON camera_bodies(mount_type)",
    "CREATE INDEX IF NOT EXISTS idx_camera_bodies_manufacturer ON camera_bodies(manufacturer)",
]


def schema_statements() -> List[str]:
    """DDL statements in dependency order, safe to run repeatedly."""
    return [ddl.strip() for _, ddl in TABLES] + list(INDEXES)


def table_names() -> List[str]:
    return [name for name, _ in TABLES]
