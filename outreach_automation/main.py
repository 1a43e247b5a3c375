import os
import logging
from flask import Flask, jsonify
from flask_cors import CORS

from outreach_automation.config import config
from outreach_automation.extensions import db

# Global scheduler instance - will be initialized lazily
execution_scheduler = None


def create_app(config_name=None):
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app.config.from_object(config[config_name])

    # Validate production configuration if needed
    if config_name == 'production':
        config[config_name].validate_config()

    # Configure CORS
    CORS(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)

    # Initialize extensions
    db.init_app(app)

    # Configure logging first so we can see route registration errors
    logging.getLogger('outreach_automation').setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    if not app.debug:
        if not os.path.exists('logs'):
            os.mkdir('logs')
        file_handler = logging.FileHandler('logs/outreach_automation.log')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        logging.getLogger('outreach_automation').addHandler(file_handler)
        app.logger.setLevel(logging.INFO)
        app.logger.info('Outreach Automation API startup')

    # Register blueprints with error handling
    try:
        from outreach_automation.routes.sequence import sequence_bp
        app.register_blueprint(sequence_bp, url_prefix='/api/v1')
        app.logger.info("Registered sequence blueprint")
    except Exception as e:
        app.logger.error(f"Failed to register sequence blueprint: {str(e)}")
        import traceback
        app.logger.error(f"Sequence blueprint error traceback: {traceback.format_exc()}")

    try:
        from outreach_automation.routes.contact import contact_bp
        app.register_blueprint(contact_bp, url_prefix='/api/v1')
        app.logger.info("Registered contact blueprint")
    except Exception as e:
        app.logger.error(f"Failed to register contact blueprint: {str(e)}")
        import traceback
        app.logger.error(f"Contact blueprint error traceback: {traceback.format_exc()}")

    # Initialize scheduler with app context
    from outreach_automation.services.scheduler import get_execution_scheduler
    global execution_scheduler
    execution_scheduler = get_execution_scheduler()
    execution_scheduler.init_app(app)

    # Start scheduler in production or when explicitly requested
    if config_name == 'production' or app.config.get('START_SCHEDULER', False):
        try:
            execution_scheduler.start()
            app.logger.info("Execution scheduler started automatically")
        except Exception as e:
            app.logger.error(f"Failed to start scheduler: {str(e)}")

    # Create database tables (avoid fatal boot failures in production)
    try:
        with app.app_context():
            # In production, only run if explicitly enabled
            if config_name != 'production' or os.environ.get('STARTUP_DB_CREATE_ALL', 'false').lower() == 'true':
                db.create_all()
                app.logger.info("Database tables created/verified")
            else:
                app.logger.info("Skipping db.create_all() on startup in production")
    except Exception as e:
        app.logger.error(f"Failed to create/verify database tables on startup: {str(e)}")

    # Register global error handlers
    try:
        from outreach_automation.utils.error_handlers import register_error_handlers
        register_error_handlers(app)
        app.logger.info("Registered global error handlers")
    except Exception as e:
        app.logger.error(f"Failed to register error handlers: {str(e)}")

    # Simple health check endpoint
    @app.route('/')
    def index():
        return jsonify({'status': 'ok', 'message': 'Outreach Automation API is running'})

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5001, debug=True)
