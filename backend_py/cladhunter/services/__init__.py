"""
Ledger services: reward engine, quota tracking and boost orders.
"""
from cladhunter.services.boosts import ManualPaymentVerifier, OrderManager, PaymentVerifier
from cladhunter.services.rewards import RewardEngine, RewardPolicy

__all__ = ["ManualPaymentVerifier", "OrderManager", "PaymentVerifier", "RewardEngine", "RewardPolicy"]
