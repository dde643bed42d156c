"""
Recursive-descent parser for the cmemsim C interpreter.

Parses a token stream from the Lexer into the AST defined in ast_nodes.
Supports the C subset used in teaching programs:

  - Global/local declarations with initializers and initializer lists
  - Full declarator syntax: pointers, arrays, parenthesized and function
    declarators, abstract declarators in casts and sizeof
  - Function definitions and prototypes (including ``...``)
  - typedef, struct/union and enum declarations
  - Expressions: arithmetic, bitwise, logical, comparison, ternary, comma,
    assignment and compound assignment, casts, sizeof
  - Pointer dereference, address-of, array subscript, member access
  - Control flow: if/else, switch/case/default, while, do-while, for,
    break, continue, return, goto and labels
"""

from __future__ import annotations
from typing import List, Optional, Set, Tuple

from .lexer import Token, TokenType
from .ast_nodes import (
    AddrOf, ArraySubscript, Assignment, ASTNode, BinaryOp, Block, BreakStmt, CaseStmt,
    Cast, CommaExpr, CompoundAssignment, ContinueStmt, Declaration, Declarator,
    DeclaratorKind, Deref, DoWhileStmt, Enumerator, EnumSpec, Expression, ExprStatement,
    ForStmt, FuncCall, Function, GotoStmt, Identifier, IfStmt, InitializerList, LabelStmt,
    Literal, LiteralKind, MemberAccess, ParamDecl, Pointer, PostIncDec, PreIncDec, Program,
    ReturnStmt, SizeofExpr, StructSpec, SwitchStmt, Tagname, TernaryOp, Typedef, TypeName,
    TypeSpec, UnaryOp, WhileStmt,
)


class ParseError(Exception):
    def __init__(self, message: str, token: Token):
        self.token = token
        self.line = token.line
        self.col = token.col
        loc = f"L{token.line}:{token.col}"
        super().__init__(f"Parse error at {loc}: {message} (got {token.type.name} = {token.value!r})")


TYPE_KEYWORDS = (
    TokenType.KW_VOID, TokenType.KW_BOOL, TokenType.KW_CHAR, TokenType.KW_SHORT,
    TokenType.KW_INT, TokenType.KW_LONG, TokenType.KW_FLOAT, TokenType.KW_DOUBLE,
    TokenType.KW_UNSIGNED, TokenType.KW_SIGNED,
)
QUALIFIER_KEYWORDS = (TokenType.KW_CONST, TokenType.KW_VOLATILE)
STORAGE_KEYWORDS = (
    TokenType.KW_STATIC, TokenType.KW_EXTERN, TokenType.KW_REGISTER,
    TokenType.KW_AUTO, TokenType.KW_TYPEDEF,
)
TAG_KEYWORDS = (TokenType.KW_STRUCT, TokenType.KW_UNION, TokenType.KW_ENUM)

COMPOUND_OPS = {
    TokenType.PLUS_ASSIGN: "+",
    TokenType.MINUS_ASSIGN: "-",
    TokenType.STAR_ASSIGN: "*",
    TokenType.SLASH_ASSIGN: "/",
    TokenType.PERCENT_ASSIGN: "%",
    TokenType.AMP_ASSIGN: "&",
    TokenType.PIPE_ASSIGN: "|",
    TokenType.CARET_ASSIGN: "^",
    TokenType.LSHIFT_ASSIGN: "<<",
    TokenType.RSHIFT_ASSIGN: ">>",
}

# Binary operator levels, loosest first. Each level is left-associative.
BINARY_LEVELS = (
    (TokenType.OR,),
    (TokenType.AND,),
    (TokenType.PIPE,),
    (TokenType.CARET,),
    (TokenType.AMP,),
    (TokenType.EQ, TokenType.NEQ),
    (TokenType.LT, TokenType.GT, TokenType.LE, TokenType.GE),
    (TokenType.LSHIFT, TokenType.RSHIFT),
    (TokenType.PLUS, TokenType.MINUS),
    (TokenType.STAR, TokenType.SLASH, TokenType.PERCENT),
)


class Parser:
    """Recursive descent parser producing an AST from tokens."""

    def __init__(self, tokens: List[Token], source: str = ""):
        self.tokens = tokens
        self.source = source
        self.pos = 0
        # Names introduced by typedef; needed to tell "T * x;" from "a * b;".
        # Scoped per block so a local variable may shadow a typedef name.
        self._typedef_scopes: List[Set[str]] = [set()]
        self._shadowed_scopes: List[Set[str]] = [set()]

    # ── Helpers ─────────────────────────────

    def _cur(self) -> Token:
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        i = self.pos + offset
        if i < len(self.tokens):
            return self.tokens[i]
        return self.tokens[-1]  # EOF

    def _at(self, *types: TokenType) -> bool:
        return self._cur().type in types

    def _advance(self) -> Token:
        tok = self.tokens[self.pos]
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return tok

    def _expect(self, ttype: TokenType, msg: str = "") -> Token:
        if self._cur().type != ttype:
            if not msg:
                msg = f"Expected {ttype.value!r}"
            raise ParseError(msg, self._cur())
        return self._advance()

    def _match(self, *types: TokenType) -> Optional[Token]:
        if self._cur().type in types:
            return self._advance()
        return None

    # ── Typedef-name bookkeeping ──────────────

    def _is_typedef_name(self, name: str) -> bool:
        for names, shadowed in zip(reversed(self._typedef_scopes), reversed(self._shadowed_scopes)):
            if name in shadowed:
                return False
            if name in names:
                return True
        return False

    def _declare_name(self, name: str, is_typedef: bool):
        if not name:
            return
        if is_typedef:
            self._typedef_scopes[-1].add(name)
            self._shadowed_scopes[-1].discard(name)
        else:
            self._shadowed_scopes[-1].add(name)
            self._typedef_scopes[-1].discard(name)

    def _push_scope(self):
        self._typedef_scopes.append(set())
        self._shadowed_scopes.append(set())

    def _pop_scope(self):
        self._typedef_scopes.pop()
        self._shadowed_scopes.pop()

    # ── Type parsing ──────────────────────────

    def _is_type_start(self, offset: int = 0) -> bool:
        """Check if the token at offset starts declaration specifiers."""
        tok = self._peek(offset)
        if tok.type in TYPE_KEYWORDS + QUALIFIER_KEYWORDS + STORAGE_KEYWORDS + TAG_KEYWORDS:
            return True
        return tok.type == TokenType.IDENT and self._is_typedef_name(tok.value)

    def _parse_decl_specifiers(self) -> Tuple[TypeSpec, Tuple[str, ...]]:
        """Parse specifiers/qualifiers/storage classes in any order."""
        start = self._cur()
        specifiers: List[str] = []
        storage: List[str] = []
        tag = None
        saw_type = False

        while True:
            tok = self._cur()
            if tok.type in STORAGE_KEYWORDS:
                storage.append(self._advance().value)
            elif tok.type in QUALIFIER_KEYWORDS:
                specifiers.append(self._advance().value)
            elif tok.type in TYPE_KEYWORDS:
                specifiers.append(self._advance().value)
                saw_type = True
            elif tok.type in (TokenType.KW_STRUCT, TokenType.KW_UNION):
                if saw_type:
                    raise ParseError("Two or more data types in declaration", tok)
                tag = self._parse_struct_spec()
                saw_type = True
            elif tok.type == TokenType.KW_ENUM:
                if saw_type:
                    raise ParseError("Two or more data types in declaration", tok)
                tag = self._parse_enum_spec()
                saw_type = True
            elif (tok.type == TokenType.IDENT and not saw_type
                  and self._is_typedef_name(tok.value)):
                specifiers.append(self._advance().value)
                saw_type = True
            else:
                break

        if not saw_type and not specifiers and not storage:
            raise ParseError("Expected type specifier", self._cur())
        if not saw_type and not any(s in ("signed", "unsigned") for s in specifiers):
            # "const x;" has no implicit int
            raise ParseError("Expected type specifier", self._cur())
        return TypeSpec(specifiers=tuple(specifiers), tag=tag,
                        line=start.line, col=start.col), tuple(storage)

    def _parse_struct_spec(self) -> StructSpec:
        tok = self._advance()  # struct / union
        is_union = tok.type == TokenType.KW_UNION
        tag = None
        if self._at(TokenType.IDENT):
            name_tok = self._advance()
            tag = Tagname(name=name_tok.value, line=name_tok.line, col=name_tok.col)
        members = None
        if self._match(TokenType.LBRACE):
            decls: List[Declaration] = []
            while not self._at(TokenType.RBRACE, TokenType.EOF):
                type_spec, storage = self._parse_decl_specifiers()
                while True:
                    declarator = self._parse_declarator()
                    decls.append(Declaration(type_spec=type_spec, declarator=declarator,
                                             storage=storage, line=declarator.line,
                                             col=declarator.col))
                    if not self._match(TokenType.COMMA):
                        break
                self._expect(TokenType.SEMI, "Expected ';' after member declaration")
            self._expect(TokenType.RBRACE, "Expected '}'")
            members = tuple(decls)
        elif tag is None:
            raise ParseError("Expected struct tag or member list", self._cur())
        return StructSpec(is_union=is_union, tag=tag, members=members,
                          line=tok.line, col=tok.col)

    def _parse_enum_spec(self) -> EnumSpec:
        tok = self._advance()  # enum
        tag = None
        if self._at(TokenType.IDENT):
            name_tok = self._advance()
            tag = Tagname(name=name_tok.value, line=name_tok.line, col=name_tok.col)
        enumerators = None
        if self._match(TokenType.LBRACE):
            items: List[Enumerator] = []
            while not self._at(TokenType.RBRACE):
                name_tok = self._expect(TokenType.IDENT, "Expected enumerator name")
                value = None
                if self._match(TokenType.ASSIGN):
                    value = self._parse_ternary()
                items.append(Enumerator(name=name_tok.value, value=value,
                                        line=name_tok.line, col=name_tok.col))
                self._declare_name(name_tok.value, is_typedef=False)
                if not self._match(TokenType.COMMA):
                    break
            self._expect(TokenType.RBRACE, "Expected '}' after enumerator list")
            enumerators = tuple(items)
        elif tag is None:
            raise ParseError("Expected enum tag or enumerator list", self._cur())
        return EnumSpec(tag=tag, enumerators=enumerators, line=tok.line, col=tok.col)

    def _parse_pointer(self) -> Optional[Pointer]:
        """Parse ``* const * ...`` into a Pointer chain (leftmost star outermost)."""
        stars: List[Tuple[Token, Tuple[str, ...]]] = []
        while self._at(TokenType.STAR):
            tok = self._advance()
            quals = []
            while self._at(*QUALIFIER_KEYWORDS):
                quals.append(self._advance().value)
            stars.append((tok, tuple(quals)))
        pointer = None
        for tok, quals in reversed(stars):
            pointer = Pointer(qualifiers=quals, child=pointer, line=tok.line, col=tok.col)
        return pointer

    def _parse_declarator(self, abstract: bool = False) -> Optional[Declarator]:
        """Parse a (possibly abstract) declarator into a Declarator chain."""
        start = self._cur()
        pointer = self._parse_pointer()

        # Direct declarator
        direct: Optional[Declarator] = None
        if self._at(TokenType.IDENT) and not (abstract and self._is_typedef_name(self._cur().value)):
            tok = self._advance()
            direct = Declarator(decl_kind=DeclaratorKind.ID,
                                identifier=Identifier(name=tok.value, line=tok.line, col=tok.col),
                                line=tok.line, col=tok.col)
        elif self._at(TokenType.LPAREN) and self._peek(1).type in (
                TokenType.STAR, TokenType.LPAREN, TokenType.IDENT, TokenType.LBRACKET) \
                and not self._is_type_start(1):
            tok = self._advance()  # (
            inner = self._parse_declarator(abstract)
            self._expect(TokenType.RPAREN, "Expected ')' in declarator")
            direct = Declarator(decl_kind=DeclaratorKind.NESTED, child=inner,
                                line=tok.line, col=tok.col)
        elif not abstract:
            raise ParseError("Expected identifier in declarator", self._cur())

        # Suffixes: [size] and (params)
        node = direct
        while self._at(TokenType.LBRACKET, TokenType.LPAREN):
            tok = self._advance()
            if tok.type == TokenType.LBRACKET:
                size = None
                if not self._at(TokenType.RBRACKET):
                    size = self._parse_assignment()
                self._expect(TokenType.RBRACKET, "Expected ']'")
                node = Declarator(decl_kind=DeclaratorKind.ARRAY, child=node, size=size,
                                  line=tok.line, col=tok.col)
            else:
                params, variadic = self._parse_param_list()
                self._expect(TokenType.RPAREN, "Expected ')' after parameters")
                node = Declarator(decl_kind=DeclaratorKind.FUNCTION, child=node,
                                  params=params, variadic=variadic,
                                  line=tok.line, col=tok.col)

        if pointer is not None:
            node = Declarator(decl_kind=DeclaratorKind.PTR, child=node, pointer=pointer,
                              line=start.line, col=start.col)
        return node

    def _parse_param_list(self) -> Tuple[Tuple[ParamDecl, ...], bool]:
        """Parse function parameter list (after '(')."""
        params: List[ParamDecl] = []
        if self._at(TokenType.RPAREN):
            return (), False
        if self._at(TokenType.KW_VOID) and self._peek(1).type == TokenType.RPAREN:
            self._advance()  # skip 'void'
            return (), False

        variadic = False
        while True:
            if self._match(TokenType.ELLIPSIS):
                variadic = True
                break
            tok = self._cur()
            type_spec, _storage = self._parse_decl_specifiers()
            declarator = None
            if not self._at(TokenType.COMMA, TokenType.RPAREN):
                declarator = self._parse_declarator(abstract=True)
            params.append(ParamDecl(type_spec=type_spec, declarator=declarator,
                                    line=tok.line, col=tok.col))
            if not self._match(TokenType.COMMA):
                break
        return tuple(params), variadic

    def _parse_type_name(self) -> TypeName:
        tok = self._cur()
        type_spec, storage = self._parse_decl_specifiers()
        if storage:
            raise ParseError("Storage class not allowed in type name", tok)
        declarator = None
        if not self._at(TokenType.RPAREN):
            declarator = self._parse_declarator(abstract=True)
        return TypeName(type_spec=type_spec, declarator=declarator, line=tok.line, col=tok.col)

    # ── Top-level parsing ─────────────────────

    def parse(self) -> Program:
        """Parse the full token stream into a Program AST."""
        items: List[ASTNode] = []
        while not self._at(TokenType.EOF):
            items.extend(self._parse_external())
        return Program(items=tuple(items), line=1, col=1)

    def _parse_external(self) -> List[ASTNode]:
        """Parse one top-level construct: function definition or declaration."""
        if self._match(TokenType.SEMI):
            return []
        if not self._is_type_start():
            raise ParseError("Expected type or declaration", self._cur())

        type_spec, storage = self._parse_decl_specifiers()
        if self._at(TokenType.SEMI):
            return self._finish_tag_only(type_spec)

        declarator = self._parse_declarator()
        last = declarator.last_derivation()
        if (last is not None and last.decl_kind == DeclaratorKind.FUNCTION
                and self._at(TokenType.LBRACE)):
            if "typedef" in storage:
                raise ParseError("Function definition declared 'typedef'", self._cur())
            return [self._parse_func_def(type_spec, storage, declarator)]

        return self._finish_declaration(type_spec, storage, declarator)

    def _finish_tag_only(self, type_spec: TypeSpec) -> List[ASTNode]:
        """``struct S { ... };`` or ``enum E { ... };`` with no declarator."""
        self._expect(TokenType.SEMI)
        if type_spec.tag is None:
            return []  # "int;" declares nothing
        return [type_spec.tag]

    def _parse_func_def(self, type_spec: TypeSpec, storage: Tuple[str, ...],
                        declarator: Declarator) -> Function:
        """Parse function definition: type name(params) { body }"""
        self._declare_name(declarator.name, is_typedef=False)
        self._push_scope()
        last = declarator.last_derivation()
        for param in last.params:
            if param.declarator is not None:
                self._declare_name(param.declarator.name, is_typedef=False)
        body = self._parse_block(new_scope=False)
        self._pop_scope()
        return Function(type_spec=type_spec, declarator=declarator, body=body,
                        storage=storage, line=declarator.line, col=declarator.col)

    def _finish_declaration(self, type_spec: TypeSpec, storage: Tuple[str, ...],
                            first: Declarator) -> List[ASTNode]:
        """Parse the rest of an init-declarator list and the ';'."""
        nodes: List[ASTNode] = []
        is_typedef = "typedef" in storage
        storage = tuple(s for s in storage if s != "typedef")
        # A struct/enum definition in the specifiers is its own construct.
        if type_spec.tag is not None and self._tag_has_body(type_spec.tag):
            nodes.append(type_spec.tag)
        declarator = first
        while True:
            self._declare_name(declarator.name, is_typedef)
            if is_typedef:
                nodes.append(Typedef(type_spec=type_spec, declarator=declarator,
                                     line=declarator.line, col=declarator.col))
            else:
                init = None
                if self._match(TokenType.ASSIGN):
                    init = self._parse_initializer()
                nodes.append(Declaration(type_spec=type_spec, declarator=declarator,
                                         initializer=init, storage=storage,
                                         line=declarator.line, col=declarator.col))
            if not self._match(TokenType.COMMA):
                break
            declarator = self._parse_declarator()
        self._expect(TokenType.SEMI, "Expected ';' after declaration")
        return nodes

    @staticmethod
    def _tag_has_body(tag: ASTNode) -> bool:
        if isinstance(tag, StructSpec):
            return tag.members is not None
        return tag.enumerators is not None

    def _parse_initializer(self):
        if self._at(TokenType.LBRACE):
            tok = self._advance()
            items = []
            while not self._at(TokenType.RBRACE):
                items.append(self._parse_initializer())
                if not self._match(TokenType.COMMA):
                    break
            self._expect(TokenType.RBRACE, "Expected '}' after initializer list")
            return InitializerList(items=tuple(items), line=tok.line, col=tok.col)
        return self._parse_assignment()

    # ── Statements ────────────────────────────

    def _parse_block(self, new_scope: bool = True) -> Block:
        """Parse a compound statement { ... }."""
        tok = self._expect(TokenType.LBRACE)
        if new_scope:
            self._push_scope()
        items: List[ASTNode] = []
        while not self._at(TokenType.RBRACE, TokenType.EOF):
            items.extend(self._parse_block_item())
        self._expect(TokenType.RBRACE, "Expected '}'")
        if new_scope:
            self._pop_scope()
        return Block(items=tuple(items), line=tok.line, col=tok.col)

    def _parse_block_item(self) -> List[ASTNode]:
        # A typedef name followed by ':' is a label, not a declaration.
        if self._is_type_start() and self._peek(1).type != TokenType.COLON:
            return self._parse_local_declaration()
        return [self._parse_statement()]

    def _parse_local_declaration(self) -> List[ASTNode]:
        type_spec, storage = self._parse_decl_specifiers()
        if self._at(TokenType.SEMI):
            return self._finish_tag_only(type_spec)
        declarator = self._parse_declarator()
        return self._finish_declaration(type_spec, storage, declarator)

    def _parse_statement(self) -> ASTNode:
        """Parse a single statement."""
        tok = self._cur()

        if self._at(TokenType.LBRACE):
            return self._parse_block()
        if self._at(TokenType.KW_RETURN):
            return self._parse_return()
        if self._at(TokenType.KW_IF):
            return self._parse_if()
        if self._at(TokenType.KW_SWITCH):
            return self._parse_switch()
        if self._at(TokenType.KW_CASE, TokenType.KW_DEFAULT):
            return self._parse_case()
        if self._at(TokenType.KW_WHILE):
            return self._parse_while()
        if self._at(TokenType.KW_DO):
            return self._parse_do_while()
        if self._at(TokenType.KW_FOR):
            return self._parse_for()

        if self._match(TokenType.KW_BREAK):
            self._expect(TokenType.SEMI)
            return BreakStmt(line=tok.line, col=tok.col)

        if self._match(TokenType.KW_CONTINUE):
            self._expect(TokenType.SEMI)
            return ContinueStmt(line=tok.line, col=tok.col)

        if self._match(TokenType.KW_GOTO):
            label = self._expect(TokenType.IDENT, "Expected label after goto").value
            self._expect(TokenType.SEMI)
            return GotoStmt(label=label, line=tok.line, col=tok.col)

        # label:
        if self._at(TokenType.IDENT) and self._peek(1).type == TokenType.COLON:
            self._advance()
            self._advance()
            body = self._parse_statement()
            return LabelStmt(label=tok.value, body=body, line=tok.line, col=tok.col)

        if self._is_type_start():
            raise ParseError("Declaration is not allowed here", tok)

        return self._parse_expr_statement()

    def _parse_return(self) -> ReturnStmt:
        tok = self._advance()  # 'return'
        value = None
        if not self._at(TokenType.SEMI):
            value = self._parse_expr()
        self._expect(TokenType.SEMI, "Expected ';' after return")
        return ReturnStmt(value=value, line=tok.line, col=tok.col)

    def _parse_if(self) -> IfStmt:
        tok = self._advance()  # 'if'
        self._expect(TokenType.LPAREN)
        cond = self._parse_expr()
        self._expect(TokenType.RPAREN)
        then_body = self._parse_statement()

        else_body = None
        if self._match(TokenType.KW_ELSE):
            else_body = self._parse_statement()

        return IfStmt(condition=cond, then_body=then_body, else_body=else_body,
                      line=tok.line, col=tok.col)

    def _parse_switch(self) -> SwitchStmt:
        tok = self._advance()  # 'switch'
        self._expect(TokenType.LPAREN)
        expr = self._parse_expr()
        self._expect(TokenType.RPAREN)
        body = self._parse_statement()
        return SwitchStmt(expr=expr, body=body, line=tok.line, col=tok.col)

    def _parse_case(self) -> CaseStmt:
        tok = self._advance()  # 'case' / 'default'
        value = None
        if tok.type == TokenType.KW_CASE:
            value = self._parse_ternary()
        self._expect(TokenType.COLON, "Expected ':' after case label")
        if self._at(TokenType.RBRACE):
            body = ExprStatement(line=tok.line, col=tok.col)  # "default: }" is tolerated
        else:
            body = self._parse_statement()
        return CaseStmt(value=value, body=body, line=tok.line, col=tok.col)

    def _parse_while(self) -> WhileStmt:
        tok = self._advance()  # 'while'
        self._expect(TokenType.LPAREN)
        cond = self._parse_expr()
        self._expect(TokenType.RPAREN)
        body = self._parse_statement()
        return WhileStmt(condition=cond, body=body, line=tok.line, col=tok.col)

    def _parse_do_while(self) -> DoWhileStmt:
        tok = self._advance()  # 'do'
        body = self._parse_statement()
        self._expect(TokenType.KW_WHILE, "Expected 'while' after do body")
        self._expect(TokenType.LPAREN)
        cond = self._parse_expr()
        self._expect(TokenType.RPAREN)
        self._expect(TokenType.SEMI)
        return DoWhileStmt(body=body, condition=cond, line=tok.line, col=tok.col)

    def _parse_for(self) -> ForStmt:
        tok = self._advance()  # 'for'
        self._expect(TokenType.LPAREN)
        self._push_scope()

        # Init
        init: Tuple[ASTNode, ...] = ()
        if self._is_type_start():
            init = tuple(self._parse_local_declaration())   # consumes ';'
        else:
            if not self._at(TokenType.SEMI):
                expr_tok = self._cur()
                init = (ExprStatement(expr=self._parse_expr(),
                                      line=expr_tok.line, col=expr_tok.col),)
            self._expect(TokenType.SEMI)

        # Condition
        cond = None
        if not self._at(TokenType.SEMI):
            cond = self._parse_expr()
        self._expect(TokenType.SEMI)

        # Update
        update = None
        if not self._at(TokenType.RPAREN):
            update = self._parse_expr()

        self._expect(TokenType.RPAREN)
        body = self._parse_statement()
        self._pop_scope()

        return ForStmt(init=init, condition=cond, update=update, body=body,
                       line=tok.line, col=tok.col)

    def _parse_expr_statement(self) -> ExprStatement:
        tok = self._cur()
        if self._match(TokenType.SEMI):
            return ExprStatement(line=tok.line, col=tok.col)
        expr = self._parse_expr()
        self._expect(TokenType.SEMI, "Expected ';' after expression")
        return ExprStatement(expr=expr, line=tok.line, col=tok.col)

    # ── Expression parsing (precedence climbing) ──

    def _parse_expr(self) -> Expression:
        """Parse a full expression, including the comma operator."""
        expr = self._parse_assignment()
        while self._at(TokenType.COMMA):
            tok = self._advance()
            right = self._parse_assignment()
            expr = CommaExpr(left=expr, right=right, line=tok.line, col=tok.col)
        return expr

    def _parse_assignment(self) -> Expression:
        """Parse assignment expressions (right-associative)."""
        left = self._parse_ternary()

        if self._at(TokenType.ASSIGN):
            tok = self._advance()
            right = self._parse_assignment()  # right-associative
            return Assignment(target=left, value=right, line=tok.line, col=tok.col)

        if self._cur().type in COMPOUND_OPS:
            tok = self._advance()
            right = self._parse_assignment()
            return CompoundAssignment(op=COMPOUND_OPS[tok.type], target=left, value=right,
                                      line=tok.line, col=tok.col)

        return left

    def _parse_ternary(self) -> Expression:
        """Parse ternary: cond ? then : else"""
        expr = self._parse_binary(0)

        if self._at(TokenType.QUESTION):
            tok = self._advance()
            then_expr = self._parse_expr()
            self._expect(TokenType.COLON, "Expected ':' in ternary")
            else_expr = self._parse_ternary()
            return TernaryOp(condition=expr, then_expr=then_expr, else_expr=else_expr,
                             line=tok.line, col=tok.col)
        return expr

    def _parse_binary(self, level: int) -> Expression:
        """Parse one left-associative binary level from BINARY_LEVELS."""
        if level == len(BINARY_LEVELS):
            return self._parse_cast()
        left = self._parse_binary(level + 1)
        while self._at(*BINARY_LEVELS[level]):
            tok = self._advance()
            right = self._parse_binary(level + 1)
            left = BinaryOp(op=tok.value, left=left, right=right,
                            line=tok.line, col=tok.col)
        return left

    def _parse_cast(self) -> Expression:
        """Parse cast expression: (type)expr or fall through to unary."""
        if self._at(TokenType.LPAREN) and self._is_type_start(1):
            tok = self._advance()  # (
            type_name = self._parse_type_name()
            self._expect(TokenType.RPAREN, "Expected ')' after cast type")
            expr = self._parse_cast()
            return Cast(type_name=type_name, expr=expr, line=tok.line, col=tok.col)
        return self._parse_unary()

    def _parse_unary(self) -> Expression:
        """Parse unary prefix operators: -, +, ~, !, *, &, ++, --, sizeof"""
        tok = self._cur()

        if self._at(TokenType.INC, TokenType.DEC):
            self._advance()
            operand = self._parse_unary()
            return PreIncDec(op=tok.value, operand=operand, line=tok.line, col=tok.col)

        if self._match(TokenType.STAR):
            operand = self._parse_cast()
            return Deref(expr=operand, line=tok.line, col=tok.col)

        if self._match(TokenType.AMP):
            operand = self._parse_cast()
            return AddrOf(expr=operand, line=tok.line, col=tok.col)

        if self._at(TokenType.MINUS, TokenType.PLUS, TokenType.TILDE, TokenType.BANG):
            self._advance()
            operand = self._parse_cast()
            return UnaryOp(op=tok.value, operand=operand, line=tok.line, col=tok.col)

        if self._at(TokenType.KW_SIZEOF):
            return self._parse_sizeof()

        return self._parse_postfix()

    def _parse_sizeof(self) -> SizeofExpr:
        tok = self._advance()  # sizeof
        if self._at(TokenType.LPAREN) and self._is_type_start(1):
            self._advance()
            type_name = self._parse_type_name()
            self._expect(TokenType.RPAREN)
            return SizeofExpr(type_name=type_name, line=tok.line, col=tok.col)
        expr = self._parse_unary()
        return SizeofExpr(expr=expr, line=tok.line, col=tok.col)

    def _parse_postfix(self) -> Expression:
        """Parse postfix operators: [], (), ., ->, ++, --"""
        expr = self._parse_primary()

        while True:
            tok = self._cur()

            if self._match(TokenType.LBRACKET):
                index = self._parse_expr()
                self._expect(TokenType.RBRACKET)
                expr = ArraySubscript(array=expr, index=index,
                                      line=tok.line, col=tok.col)
                continue

            if self._match(TokenType.LPAREN):
                args = self._parse_arg_list()
                self._expect(TokenType.RPAREN, "Expected ')' after arguments")
                expr = FuncCall(callee=expr, args=args,
                                line=expr.line, col=expr.col)
                continue

            if self._at(TokenType.DOT, TokenType.ARROW):
                self._advance()
                member = self._expect(TokenType.IDENT, "Expected member name").value
                expr = MemberAccess(obj=expr, member=member,
                                    is_arrow=tok.type == TokenType.ARROW,
                                    line=tok.line, col=tok.col)
                continue

            if self._at(TokenType.INC, TokenType.DEC):
                self._advance()
                expr = PostIncDec(op=tok.value, operand=expr, line=tok.line, col=tok.col)
                continue

            break

        return expr

    def _parse_arg_list(self) -> Tuple[Expression, ...]:
        """Parse function call argument list."""
        args = []
        if self._at(TokenType.RPAREN):
            return ()
        args.append(self._parse_assignment())  # assignment level, not full expr with comma
        while self._match(TokenType.COMMA):
            args.append(self._parse_assignment())
        return tuple(args)

    def _parse_primary(self) -> Expression:
        """Parse primary expressions: literals, identifiers, parenthesized."""
        tok = self._cur()

        if self._match(TokenType.INT_LITERAL):
            return Literal(literal_kind=LiteralKind.INT, value=tok.value, suffix=tok.suffix,
                           line=tok.line, col=tok.col)

        if self._match(TokenType.FLOAT_LITERAL):
            return Literal(literal_kind=LiteralKind.FLOAT, value=tok.value, suffix=tok.suffix,
                           line=tok.line, col=tok.col)

        if self._match(TokenType.CHAR_LITERAL):
            return Literal(literal_kind=LiteralKind.CHAR, value=tok.value,
                           line=tok.line, col=tok.col)

        # String literal; adjacent literals are concatenated
        if self._at(TokenType.STRING_LITERAL):
            parts = []
            while self._at(TokenType.STRING_LITERAL):
                parts.append(self._advance().value)
            return Literal(literal_kind=LiteralKind.STRING, value="".join(parts),
                           line=tok.line, col=tok.col)

        if self._match(TokenType.IDENT):
            return Identifier(name=tok.value, line=tok.line, col=tok.col)

        if self._match(TokenType.LPAREN):
            expr = self._parse_expr()
            self._expect(TokenType.RPAREN, "Expected ')'")
            return expr

        raise ParseError("Expected expression", tok)
