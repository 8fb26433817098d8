"""
Demo run of the service.

Serves a small product catalogue from an in-memory sqlite db.
"""
import logging

import bottle
import click
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, create_engine, func
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from fastcrud import models, service, util
from fastcrud.config import Config
from fastcrud.controller import CrudController

Base = declarative_base()


class Section(models.CrudMixin, Base):
    __tablename__ = "sections"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(36), unique=True)
    name = Column(String, nullable=False)


class Category(models.CrudMixin, Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(36), unique=True)
    name = Column(String, nullable=False)
    section_id = Column(Integer, ForeignKey("sections.id"))

    section = relationship(Section)


class Product(models.CrudMixin, models.SoftDeletes, Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(36), unique=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2))
    tags = Column(JSON)
    category_id = Column(Integer, ForeignKey("categories.id"))
    created_at = Column(DateTime, nullable=False, default=func.now())

    category = relationship(Category)


class CategoryController(CrudController):
    model = Category


class ProductController(CrudController):
    model = Product
    csv_columns = {"name": "Name", "price": "Price", "created_at": "Created"}


def build_service(uri: str, config: Config = None, debug: bool = False) -> bottle.Bottle:
    engine = create_engine(uri, echo=debug)
    Base.metadata.create_all(engine)
    Session = sessionmaker(engine)

    app = bottle.Bottle()
    router = service.Router(app)
    router.crud("/categories", CategoryController(Session, config), "categories")
    router.crud("/products", ProductController(Session, config), "products")
    return app


@click.group()
@click.pass_context
@click.option(
    "--uri", default="sqlite://", help="Database URI to use, defaults to memory sqlite DB"
)
@click.option("--sqlite", "sqlite_path", help="Path to a sqlite database file, overrides --uri")
@click.option(
    "--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="JSON settings file"
)
@click.option("--debug", is_flag=True, help="Log debug messages and SQL statements")
def cli(ctx, uri: str = None, sqlite_path: str = None, config_path: str = None, debug: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if sqlite_path:
        uri = util.uri("sqlite", database=sqlite_path)
    config = Config.from_file(config_path) if config_path else None
    ctx.obj = build_service(uri, config=config, debug=debug)


@cli.command()
@click.pass_context
@click.option("--host", default="localhost")
@click.option("--port", default=8080, type=int)
def run(ctx, host: str, port: int):
    svc = ctx.obj
    svc.run(host=host, port=port, debug=True, reloader=True)


@cli.command()
@click.pass_context
def routes(ctx):
    svc = ctx.obj
    for route in svc.routes:
        click.echo(f"{route.method:7} {route.rule}")


if __name__ == "__main__":
    cli()
