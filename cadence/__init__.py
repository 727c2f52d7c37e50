import click
from flask import Flask
from flask.cli import with_appcontext
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect
from config import Config, _normalise_prefix



db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()


def create_app(config_class: type[Config] = Config) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    url_prefix = _normalise_prefix(app.config.get("URL_PREFIX", ""))
    app.config["URL_PREFIX"] = url_prefix

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    from .services import CACHE_EXTENSION_KEY, StatisticsCache

    app.extensions[CACHE_EXTENSION_KEY] = StatisticsCache(
        ttl_seconds=app.config.get("DURATION_CACHE_TTL", 3600)
    )

    from . import models  # noqa: F401  # Ensure models registered for migrations

    with app.app_context():
        db.create_all()

    from .api import api_bp
    from .routes import bp as main_bp
    from .routes import duration_bp

    app.register_blueprint(main_bp, url_prefix=url_prefix or None)
    app.register_blueprint(duration_bp, url_prefix=f"{url_prefix}/admin/duration")
    app.register_blueprint(api_bp, url_prefix=f"{url_prefix}/api")

    from .cli import duration_cli

    app.cli.add_command(duration_cli)

    @app.cli.command("seed")
    @with_appcontext
    def seed() -> None:
        """Seed a sample training catalogue for development."""
        from .seed import seed_data

        created = seed_data()
        click.echo(f"{created} élément(s) créé(s).")

    return app
