from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import AuthView, CompanyView, AccountViewSet, TransactionViewSet, JournalView
from .report_views import income_statement_view, balance_sheet_view, trial_balance_view, general_ledger_view

router = DefaultRouter()
router.register(r'auth', AuthView, basename='auth')
router.register(r'companies', CompanyView, basename='companies')
router.register(r'accounts', AccountViewSet, basename='accounts')
router.register(r'transactions', TransactionViewSet, basename='transactions')
router.register(r'journal', JournalView, basename='journal')
urlpatterns = [
    path('', include(router.urls)),
    path('reports/income-statement/', income_statement_view, name='report-income-statement'),
    path('reports/balance-sheet/', balance_sheet_view, name='report-balance-sheet'),
    path('reports/trial-balance/', trial_balance_view, name='report-trial-balance'),
    path('reports/general-ledger/', general_ledger_view, name='report-general-ledger'),
]
