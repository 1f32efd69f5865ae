# The module defines the calculator tool: arithmetic over + - * / and parentheses.
# Version: 0.1.0

import ast
import operator
import re
from pydantic import BaseModel, Field
from typing import Any, Dict, Type, Union
from .base_tool import BaseTool
from ai_agent.utils.logger import console

Number = Union[int, float]

VALID_EXPRESSION = re.compile(r"^[0-9+\-*/().\s]+$")

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class CalculatorInput(BaseModel):
    """
    Input model for the CalculatorTool.
    Attributes:
        expression (str): The arithmetic expression to evaluate.
    """
    expression: str = Field(..., description='Mathematical expression to evaluate (e.g., "2 + 3 * 4")')


def evaluate_expression(expression: str) -> Number:
    """
    Evaluates an arithmetic expression by walking its syntax tree.
    Only numbers, the four basic operators, unary signs and parentheses are allowed.
    """
    tree = ast.parse(expression.strip(), mode="eval")
    return _evaluate_node(tree.body)


def _evaluate_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        return _BINARY_OPERATORS[type(node.op)](_evaluate_node(node.left), _evaluate_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate_node(node.operand))
    raise ValueError("Unsupported element in expression")


class CalculatorTool(BaseTool):
    """
    Evaluates arithmetic expressions without ever handing them to eval().
    """
    name: str = "calculator"
    description: str = "Performs mathematical calculations with basic arithmetic operations"
    args_schema: Type[BaseModel] = CalculatorInput
    examples = [
        "What's 15 * 23?",
        "How much is 100 + 50?",
        "Calcula 15 * 23 + 100",
    ]

    async def execute(self, user_id: str, expression: Any = None) -> Dict[str, Any]:
        expression = "" if expression is None else str(expression)
        if not VALID_EXPRESSION.match(expression):
            return {"success": False, "error": "Invalid mathematical expression", "expression": expression}

        try:
            result = evaluate_expression(expression)
        except ZeroDivisionError:
            return {"success": False, "error": "Division by zero", "expression": expression}
        except (SyntaxError, ValueError, TypeError):
            return {"success": False, "error": "Failed to evaluate expression", "expression": expression}

        if isinstance(result, float) and result.is_integer():
            result = int(result)
        console.info(f"Calculator evaluated '{expression}' = {result}")
        return {"success": True, "result": result, "expression": expression}
