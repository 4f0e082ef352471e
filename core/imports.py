from flask import Flask, request, jsonify, Blueprint, current_app
from flask_jwt_extended import create_access_token, get_jwt_identity, jwt_required, JWTManager, get_jwt
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from flask_migrate import Migrate
from sqlalchemy import func, update
from flask_bcrypt import Bcrypt
from flasgger import Swagger
from flask_cors import CORS
from datetime import datetime, date, timedelta, timezone
from decimal import Decimal
import click
