from app.schemas.common import IdempotentRequest, ErrorResponse
from app.schemas.budgets import BudgetOut, BudgetLineOut, BudgetResponse, BudgetWithLinesResponse
from app.schemas.contracts import ContractOut, ContractResponse, ContractWithBudgetResponse
