from email.utils import formatdate
import functools
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

import bottle
import marshmallow.exceptions
from marshmallow import EXCLUDE, Schema, fields, validate

from fastcrud import constants, exceptions
from fastcrud.config import Config
from fastcrud.controller import CrudController, validation_errors

logger = logging.getLogger(__name__)

QUERY_KEY_PATTERN = r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$"
QUERY_SEGMENT_PATTERN = r"\[([^\[\]]*)\]"


def parse_query(pairs: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """
    Expands bracketed query keys into nested dictionaries, eg,

        filter[name][like]=abc&filter[status]=open&ids[]=1&ids[]=2
        {"filter": {"name": {"like": "abc"}, "status": "open"}, "ids": ["1", "2"]}

    Later values for the same key replace earlier ones, except for `[]` keys
    which collect every value.
    """
    result = {}
    for key, value in pairs:
        match = re.match(QUERY_KEY_PATTERN, key)
        if match is None:
            result[key] = value
            continue

        path = [match.group(1)] + re.findall(QUERY_SEGMENT_PATTERN, match.group(2))
        append = len(path) > 1 and path[-1] == ""
        if append:
            path.pop()

        target = result
        for segment in path[:-1]:
            child = target.get(segment)
            if not isinstance(child, dict):
                child = target[segment] = {}
            target = child

        if append:
            values = target.get(path[-1])
            if not isinstance(values, list):
                values = target[path[-1]] = []
            values.append(value)
        else:
            target[path[-1]] = value

    return result


# ==================================================================================
# JSend


def success(data: Any = None, meta: Dict[str, Any] = None) -> Dict[str, Any]:
    return {"status": "success", "data": data, "meta": meta or {}}


def fail(data: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"status": "fail", "data": data, "meta": {}}


def error(message: str, code: int) -> Dict[str, Any]:
    return {"status": "error", "message": message, "code": code}


def error_response(exc: Exception) -> Tuple[int, Dict[str, Any]]:
    """Maps an exception to an HTTP status and JSend payload"""
    if isinstance(exc, exceptions.ValidationFailed):
        return 400, fail(exc.errors)
    if isinstance(exc, marshmallow.exceptions.ValidationError):
        data = exc.data if isinstance(exc.data, dict) else {}
        return 400, fail(validation_errors(data, exc.normalized_messages()))
    if isinstance(exc, bottle.HTTPError):
        return exc.status_code, error(str(exc.body), exc.status_code)
    if isinstance(exc, exceptions.RecordNotFound):
        return 404, error(str(exc), 404)
    if isinstance(exc, exceptions.Forbidden):
        return 403, error(str(exc), 403)
    if isinstance(exc, exceptions.CrudError):
        return 400, error(str(exc), 400)
    return 500, error("InternalServerError", 500)


def request_payload() -> Dict[str, Any]:
    """Request body as a dictionary, either JSON or form encoded"""
    payload = bottle.request.json
    if payload is None:
        payload = parse_query(bottle.request.forms.decode().allitems())
    return payload


def interface(request_cls: Schema, status: int = 200):
    def _wrap(func):
        # *args is to allow pass through for `self` if present
        @functools.wraps(func)
        def _parser(*args, **path_kwargs):
            # Path arguments take precedence over query parameters of the same name
            params = {**parse_query(bottle.request.query.decode().allitems()), **path_kwargs}
            try:
                req = request_cls().load(params)
                # Actions may override the status
                bottle.response.status = status
                resp = func(*args, req)
            except Exception as e:
                code, resp = error_response(e)
                if code >= 500:
                    logger.exception("Unhandled error for %s %s", bottle.request.method, bottle.request.path)
                else:
                    logger.debug("Request failed with %s: %s", code, e)
                bottle.response.status = code

            if isinstance(resp, bottle.HTTPResponse):
                return resp
            bottle.response.content_type = "application/json"
            return resp

        return _parser

    return _wrap


# ==================================================================================
# Requests


class RequestSchema(Schema):
    class Meta:
        unknown = EXCLUDE


class Flag(fields.Boolean):
    """
    Presence flag, any value outside the falsy set is true, eg,
    `?skipPagination`, `?skipPagination=0` and `?skipPagination=false` are false,
    `?skipPagination=1` and `?skipPagination=yes-please` are true.
    """

    default_falsy = fields.Boolean.falsy | {""}

    def __init__(self, **kwargs):
        kwargs.setdefault("falsy", self.default_falsy)
        super().__init__(**kwargs)

    def _deserialize(self, value, attr, data, **kwargs) -> bool:
        try:
            return value not in self.falsy
        except TypeError as e:
            raise self.make_error("invalid", input=value) from e


class SearchRequest(RequestSchema):
    filters = fields.Dict(data_key="filter", load_default=dict)
    sort = fields.Str(load_default="")
    per_page = fields.Int(data_key="perPage", load_default=None)
    page = fields.Int(validate=validate.Range(min=1), load_default=1)
    skip_pagination = Flag(data_key="skipPagination", load_default=False)


class ExportRequest(SearchRequest):
    limit = fields.Int(load_default=None)


class OptionsRequest(RequestSchema):
    label = fields.Str(load_default=None)
    value = fields.Str(load_default=None)
    limit = fields.Int(load_default=None)


class WriteRequest(RequestSchema):
    pass


class RecordRequest(RequestSchema):
    id = fields.Str(required=True)


class CrudResource:
    """HTTP actions for a controller, each returning a JSend payload"""

    def __init__(self, controller: CrudController, config: Config = None) -> None:
        self._controller = controller
        self._config = config or controller.config

    @interface(SearchRequest)
    def search(self, request: SearchRequest):
        page = self._controller.search(
            filters=request["filters"],
            sort=request["sort"],
            per_page=request["per_page"],
            skip_pagination=request["skip_pagination"],
            page=request["page"],
        )
        return success(page.rows, meta={"pagination": page.meta})

    @interface(OptionsRequest)
    def options(self, request: OptionsRequest):
        rows = self._controller.options(
            label=request["label"], value=request["value"], limit=request["limit"]
        )
        return success(rows)

    @interface(WriteRequest, status=201)
    def create(self, request: WriteRequest):
        return success(self._controller.create(request_payload()))

    @interface(ExportRequest)
    def export_csv(self, request: ExportRequest):
        body = self._controller.export_csv(
            filters=request["filters"],
            sort=request["sort"],
            per_page=request["per_page"],
            skip_pagination=request["skip_pagination"],
            page=request["page"],
            limit=request["limit"],
        )
        return bottle.HTTPResponse(
            body,
            status=200,
            headers={
                "Content-Type": "text/csv",
                "Content-Disposition": f'attachment; filename="{self._controller.export_file_name()}"',
                "Cache-Control": "max-age=0, no-cache, must-revalidate, proxy-revalidate",
                "Last-Modified": formatdate(usegmt=True),
                "Content-Transfer-Encoding": "binary",
            },
        )

    @interface(RecordRequest)
    def read(self, request: RecordRequest):
        return success(self._controller.read(request["id"]))

    @interface(RecordRequest)
    def update(self, request: RecordRequest):
        return success(self._controller.update(request["id"], request_payload()))

    @interface(RecordRequest)
    def delete(self, request: RecordRequest):
        self._controller.delete(request["id"])
        bottle.response.status = self._config.get("delete", "http_status")
        return success()

    @interface(RecordRequest, status=204)
    def soft_delete(self, request: RecordRequest):
        self._controller.soft_delete(request["id"])
        return None

    @interface(RecordRequest)
    def restore(self, request: RecordRequest):
        data = self._controller.restore(request["id"])
        bottle.response.status = self._config.get("restore", "http_status")
        return success(data)


# ==================================================================================
# Routing


def should_register(method: str, only: Sequence[str] = (), except_: Sequence[str] = ()) -> bool:
    if only:
        return method in only
    return method not in except_


class Router:
    """
    Registers the CRUD routes of a controller, each guarded by the ability
    `{module}.access.{permission}`.

    `authorizer(ability, request)` decides whether the current request may use
    the route, without one every route is open.
    """

    def __init__(self, app: bottle.Bottle, authorizer: Callable[[str, bottle.BaseRequest], bool] = None) -> None:
        self.app = app
        self.authorizer = authorizer

    def crud(
        self,
        uri: str,
        controller: CrudController,
        module_name: str,
        except_: Sequence[str] = (),
        only: Sequence[str] = (),
    ) -> List[bottle.Route]:
        resource = CrudResource(controller)
        routes = []
        for verb, path, method, permission in constants.CRUD_ACTIONS:
            callback = getattr(resource, method, None)
            if callback is None:
                continue
            if not should_register(method, only=only, except_=except_):
                continue

            ability = f"{module_name}.access.{permission}"
            self.app.route(uri + path, method=verb, callback=self._guard(callback, ability))
            routes.append(self.app.routes[-1])
            logger.debug("Registered %s %s%s requiring %s", verb, uri, path, ability)
        return routes

    def _guard(self, callback: Callable, ability: str) -> Callable:
        @functools.wraps(callback)
        def _guarded(*args, **kwargs):
            if self.authorizer is not None and not self.authorizer(ability, bottle.request):
                code, resp = error_response(exceptions.Forbidden(f"Missing ability {ability}"))
                bottle.response.status = code
                bottle.response.content_type = "application/json"
                return resp
            return callback(*args, **kwargs)

        return _guarded
