from typing import Dict, Optional, Sequence

from katlang.kat_cloner import ExpressionCloner
from katlang.kat_datatypes import KatLangRuntimeError, Expression, Parameter, Property


class Environment:
    """
    One frame of the active call chain.

    Holds the properties visible in the frame and the parameters bound to
    unevaluated argument expressions. A parameter bound to None is known to
    the frame but unbound, which hides outer bindings of the same name.
    """

    def __init__(self, parent: Optional['Environment'], properties: Sequence[Property],
                 parameters: Sequence[str], arguments: Sequence[Expression],
                 detector, identity: Optional[Parameter] = None):
        self.parent = parent
        self._algorithms: Dict[str, Expression] = {}
        self._parameters: Dict[str, Optional[Expression]] = {}
        self._cloner = ExpressionCloner()

        self.join_algorithm(properties)

        bound = min(len(parameters), len(arguments))
        for name, argument in zip(parameters[:bound], arguments[:bound]):
            if detector.is_parameter_contained_in_expression(name, argument):
                raise KatLangRuntimeError.at(
                    f"Infinite recursion detected. Property execution lacks an argument "
                    f"for the parameter '{name}'.",
                    identity if identity is not None else argument)
            self._parameters[name] = argument
        for name in parameters[bound:]:
            self._parameters[name] = None

    def join_algorithm(self, properties: Sequence[Property]):
        for prop in properties:
            self._algorithms[prop.name] = prop.algorithm

    def get_parameter_value(self, name: str) -> Optional[Expression]:
        env = self
        while env is not None:
            if name in env._parameters:
                return env._parameters[name]
            env = env.parent
        return None

    def contains_algorithm(self, name: str) -> bool:
        env = self
        while env is not None:
            if name in env._algorithms:
                return True
            env = env.parent
        return False

    def get_algorithm(self, name: str) -> Optional[Expression]:
        """Returns a fresh copy of the nearest property body called `name`."""
        env = self
        while env is not None:
            if name in env._algorithms:
                return self._cloner.clone(env._algorithms[name])
            env = env.parent
        return None
