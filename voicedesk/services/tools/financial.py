"""Financial specialist tools. Data tools require a verified access code."""
import logging
from typing import Any, Dict

from voicedesk.services.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter

logger = logging.getLogger(__name__)

FINANCIAL_SECTIONS = ["balance_sheet", "income_statement", "cash_flow", "kpis"]

ACCESS_REQUIRED = {
    "success": False,
    "error": "access_not_verified",
    "message": "Financial data is restricted. Ask the caller for their access code first.",
}


def _access_verified(context: ToolContext) -> bool:
    return context.call is not None and context.call.financial_access_verified


class VerifyAccessCodeTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="verify_access_code",
            description="Verify the caller's access code before sharing restricted financial data.",
            parameters=[
                ToolParameter("access_code", "string", "Access code spoken by the caller", required=True),
            ],
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        code = str(arguments.get("access_code", ""))
        authorized = await context.knowledge.verify_access_code(code)
        if authorized and context.call is not None:
            context.call.financial_access_verified = True

        logger.info(
            f"[TOOLS] Financial access attempt - CallSid: {context.call_id}, "
            f"Result: {'AUTHORIZED' if authorized else 'DENIED'}"
        )
        if authorized:
            return {"authorized": True, "message": "Access granted. You may now share financial information."}
        company = await context.knowledge.get_company_info()
        phone = company.contact.get("phone")
        contact_str = f" on {phone}" if phone else ""
        return {
            "authorized": False,
            "message": f"The code is not valid. The caller can request access from administration{contact_str}.",
        }


class GetFinancialSummaryTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_financial_summary",
            description="Get a summary of the main financial results for the last fiscal year.",
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        if not _access_verified(context):
            return dict(ACCESS_REQUIRED)
        financial = await context.knowledge.get_financial_data()
        if financial is None:
            return {"success": False, "error": "no_data", "message": "No financial data is available."}
        return {"fiscal_year": financial.fiscal_year, "summary": financial.summary}


class GetFinancialReportTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_financial_report",
            description="Get one section of the annual financial report.",
            parameters=[
                ToolParameter(
                    "section", "string", "Report section", required=True, enum=FINANCIAL_SECTIONS,
                ),
            ],
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        if not _access_verified(context):
            return dict(ACCESS_REQUIRED)
        section = str(arguments.get("section", ""))
        data = await context.knowledge.get_financial_section(section)
        if data is None:
            return {
                "success": False,
                "error": "unknown_section",
                "message": f"No '{section}' section is available.",
            }
        financial = await context.knowledge.get_financial_data()
        return {"fiscal_year": financial.fiscal_year, "section": section, "data": data}
