from .controller import ADMISSION_RULES, AdmissionRule, evaluate

__all__ = ["ADMISSION_RULES", "AdmissionRule", "evaluate"]
