import logging
from flask import request, jsonify

from config import LAMPORTS_PER_SOL
from tapminer.exceptions import ConfigurationError, ValidationError
from tapminer.mining.reward_engine import calculate_available_balance, lamports_to_sol
from tapminer.utils.rate_limiter import with_rate_limit, with_wallet_click_limit
from tapminer.utils.validators import (
    require_json, validate_points, validate_session_id, validate_wallet_address
)

logger = logging.getLogger(__name__)


def configure_routes(app, services):
    config = services.config
    sessions = services.sessions
    orchestrator = services.orchestrator
    ip_limit = with_rate_limit(services.ip_limiter)
    click_limit = with_wallet_click_limit(services.click_limiter)

    def wallet_from(data):
        return validate_wallet_address(
            data.get('wallet'),
            min_length=config.MIN_WALLET_LENGTH,
            max_length=config.MAX_WALLET_LENGTH
        )

    @app.route('/api/session', methods=['GET'])
    @ip_limit
    def get_session():
        """Current session snapshot for the mining screen"""
        try:
            session = sessions.get_session()
            total_points = session.total_points
            return jsonify({
                'sessionId': session.id,
                'timeRemaining': sessions.time_remaining(session),
                'totalPoints': total_points,
                'minerCount': session.miner_count,
                'leaderboard': sessions.get_leaderboard(),
                'estimatedPoolSOL': total_points / config.POINTS_PER_SOL_ESTIMATE
            })
        except Exception as e:
            logger.exception(f"Get session error: {str(e)}")
            return jsonify({'error': 'Failed to load session'}), 500

    @app.route('/api/session', methods=['POST'])
    @ip_limit
    @require_json()
    def join_session():
        data = request.validated_data
        wallet = wallet_from(data)

        try:
            session = sessions.join_session(wallet)
            return jsonify({
                'success': True,
                'sessionId': session.id,
                'timeRemaining': sessions.time_remaining(session)
            })
        except Exception as e:
            logger.exception(f"Join session error: {str(e)}")
            return jsonify({'error': 'Failed to join session'}), 500

    @app.route('/api/mine', methods=['POST'])
    @ip_limit
    @click_limit
    @require_json()
    def mine():
        """Credit tapped points to the wallet in the current session"""
        data = request.validated_data
        try:
            wallet = wallet_from(data)
            points = validate_points(data.get('points'), max_points=config.MAX_POINTS_PER_SUBMIT)
        except ValidationError as e:
            logger.debug(f"Rejected mine request: {e}")
            raise ValidationError('Invalid data', field=e.field) from e

        try:
            session = sessions.submit_points(wallet, points)
            entry = session.miners.get(wallet)
            return jsonify({
                'success': True,
                'userPoints': entry.points if entry else 0,
                'sessionId': session.id
            })
        except Exception as e:
            logger.exception(f"Submit points error: {str(e)}")
            return jsonify({'error': 'Failed to record points'}), 500

    @app.route('/api/distribute', methods=['POST'])
    @require_json(optional=True)
    def distribute():
        """Pay out the oldest closed session that has not been distributed yet"""
        session_id = validate_session_id(request.validated_data.get('sessionId'))
        outcome = orchestrator.attempt(session_id)
        return jsonify(outcome.to_dict()), outcome.http_status

    @app.route('/api/history', methods=['GET'])
    @ip_limit
    def history():
        try:
            return jsonify({'history': sessions.get_distributions()})
        except Exception as e:
            logger.exception(f"History error: {str(e)}")
            return jsonify({'error': 'Failed to load history'}), 500

    @app.route('/api/pool', methods=['GET'])
    @ip_limit
    def pool():
        """Reward wallet balance"""
        empty = {'balance': 0, 'balanceSOL': 0, 'available': 0}
        try:
            gateway = services.gateway_factory()
            balance = gateway.get_balance()
        except ConfigurationError:
            return jsonify(dict(empty, error='Not configured'))
        except Exception as e:
            logger.error(f"Pool balance error: {str(e)}")
            return jsonify(dict(empty, error=str(e)))

        available = calculate_available_balance(
            balance, 0, config.BASE_RESERVE_LAMPORTS, config.PER_MINER_RESERVE_LAMPORTS
        )
        return jsonify({
            'balance': balance,
            'balanceSOL': f"{balance / LAMPORTS_PER_SOL:.6f}",
            'available': f"{lamports_to_sol(available):.6f}",
            'walletAddress': gateway.address[:8] + '...'
        })
