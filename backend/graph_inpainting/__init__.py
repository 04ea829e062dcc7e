from flask import Flask
from flask_cors import CORS

# Create a Flask application instance
app = Flask(__name__)

# Enable Cross-Origin Resource Sharing (CORS) for the app
CORS(app)

# Import routes to register them with the app
from graph_inpainting import routes
