"""
punit.budget
============

Time and token budgets at METHOD, CLASS and SUITE scope.

Key Components
--------------
- `CostBudgetMonitor`: per-invocation limits, static or dynamic token charging
- `SharedBudgetMonitor`: thread-safe limits shared by a class or the suite
- `BudgetOrchestrator`: checks every applicable scope before and after a sample
- `GlobalCostAccumulator`: process-wide totals and the end-of-run summary
"""
